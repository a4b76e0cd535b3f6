"""
app/services/mapbox_client.py

Mapbox API クライアント

Map Matching API を使用して、GPSトラックのバッチを道路ネットワークにスナップする。
1回の呼び出しで1バッチ（2〜100座標）を処理する。分割と間隔制御は
BatchOrchestrator が担当する。

公式ドキュメント:
- Mapbox Map Matching API: https://docs.mapbox.com/api/navigation/map-matching/
- httpx AsyncClient: https://www.python-httpx.org/async/
"""
import logging
from typing import Optional
import httpx

from app.models.common import GeoJSONLineString
from app.services.errors import UpstreamError


logger = logging.getLogger(__name__)


# =============================================================================
# 定数定義
# =============================================================================

# Mapbox API エンドポイント
MAPBOX_API_BASE = "https://api.mapbox.com"

# Map Matching API パス
# 参照: https://docs.mapbox.com/api/navigation/map-matching/
MAP_MATCHING_PATH = "/matching/v5/mapbox"

# プロファイル（移動手段）
# 参照: https://docs.mapbox.com/api/navigation/map-matching/#optional-parameters
PROFILES = {
    "driving": "driving",
    "driving-traffic": "driving-traffic",
    "cycling": "cycling",
    "walking": "walking",
}

# 座標ごとの探索半径（メートル）
DEFAULT_RADIUS = 25


# =============================================================================
# Mapboxクライアント
# =============================================================================

class MapboxClient:
    """
    Mapbox APIクライアント

    Map Matching API を呼び出し、マッチング済みジオメトリを返す。
    失敗はすべて UpstreamError に変換する。

    設計根拠:
    - httpx.AsyncClient を共有してコネクションを再利用
      参照: https://www.python-httpx.org/async/
    - geometries=geojson で座標配列をそのまま取得
    - radiuses を全座標に指定し、GPS誤差の許容範囲を揃える

    Attributes:
        _client (httpx.AsyncClient): HTTPクライアント
        _access_token (str): Mapbox アクセストークン
        profile (str): プロファイル
        radius (int): 座標ごとの探索半径（メートル）

    使用例:
        async with MapboxClient(access_token) as client:
            geometries = await client.match(
                [(-97.1000, 31.5000), (-97.1010, 31.5010)]
            )
    """

    def __init__(
        self,
        access_token: str,
        profile: str = "driving",
        radius: int = DEFAULT_RADIUS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        初期化

        Args:
            access_token: Mapbox アクセストークン
            profile: プロファイル ("driving" / "cycling" / "walking" など)
            radius: 座標ごとの探索半径（メートル）
            client: 共有するHTTPクライアント（テスト時の差し替え用）

        参照: https://docs.mapbox.com/api/overview/#access-tokens-and-token-scopes
        """
        if profile not in PROFILES:
            raise ValueError(f"Unknown Mapbox profile: {profile}")

        self._access_token = access_token
        self.profile = PROFILES[profile]
        self.radius = radius
        self._client = client or httpx.AsyncClient(
            base_url=MAPBOX_API_BASE,
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=10.0),
            limits=httpx.Limits(
                max_connections=10,
                max_keepalive_connections=5,
            ),
            headers={
                "User-Agent": "MapMatchingApp/1.0",
                "Accept": "application/json",
            },
        )

    async def __aenter__(self):
        """async with 文のエントリポイント"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """async with 文の終了処理"""
        await self.close()

    async def close(self):
        """クライアントをクローズ"""
        await self._client.aclose()

    # =========================================================================
    # Map Matching API
    # =========================================================================

    def build_request(self, batch: list[tuple[float, float]]) -> tuple[str, dict]:
        """
        リクエストのパスとクエリパラメータを組み立てる

        Args:
            batch: 座標リスト [(経度, 緯度), ...]

        Returns:
            (パス, クエリパラメータ)
        """
        # 座標を文字列に変換: "lon,lat;lon,lat;..."
        coords_str = ";".join(f"{lon},{lat}" for lon, lat in batch)
        path = f"{MAP_MATCHING_PATH}/{self.profile}/{coords_str}"

        # 参照: https://docs.mapbox.com/api/navigation/map-matching/#optional-parameters
        params = {
            "access_token": self._access_token,
            "geometries": "geojson",
            "radiuses": ";".join([str(self.radius)] * len(batch)),
        }
        return path, params

    async def match(self, batch: list[tuple[float, float]]) -> list[GeoJSONLineString]:
        """
        1バッチを道路ネットワークにマッチング

        Mapboxはトレースを複数のマッチングに分割して返すことがあるため、
        matchings[].geometry をすべて順番どおりに返す。

        API仕様:
        - coordinates: 2〜100座標
        - geometries=geojson: GeoJSON形式で返却
        - radiuses: 座標ごとの探索半径（セミコロン区切り）

        参照: https://docs.mapbox.com/api/navigation/map-matching/#response-retrieve-a-match

        Args:
            batch: 座標リスト [(経度, 緯度), ...]

        Returns:
            list[GeoJSONLineString]: マッチングされたジオメトリ

        Raises:
            UpstreamError: 通信エラー、HTTPエラー、code != "Ok"、不正なレスポンス
        """
        path, params = self.build_request(batch)

        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.error("Mapbox request failed: %s", e)
            raise UpstreamError(f"Mapbox request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            code = data.get("code") if isinstance(data, dict) else None
            logger.error("Mapbox API error: HTTP %d %s", response.status_code, data)
            raise UpstreamError(
                f"Mapbox API error: HTTP {response.status_code}",
                status_code=response.status_code,
                code=code,
            )

        if not isinstance(data, dict):
            raise UpstreamError("Malformed Mapbox response", status_code=response.status_code)

        # レスポンス確認
        code = data.get("code")
        if code != "Ok":
            logger.error("Mapbox API error: %s (%s)", code, data.get("message"))
            raise UpstreamError(
                f"Mapbox API error: {code}",
                status_code=response.status_code,
                code=code,
            )

        matchings = data.get("matchings")
        if not isinstance(matchings, list):
            raise UpstreamError("Malformed Mapbox response: no matchings", code=code)

        geometries = []
        for matching in matchings:
            geometry = matching.get("geometry") if isinstance(matching, dict) else None
            if not isinstance(geometry, dict) or "coordinates" not in geometry:
                raise UpstreamError("Malformed Mapbox response: no geometry", code=code)
            geometries.append(GeoJSONLineString(coordinates=geometry["coordinates"]))

        return geometries

    # =========================================================================
    # ユーティリティ
    # =========================================================================

    async def validate_token(self) -> bool:
        """
        アクセストークンの有効性を確認

        Returns:
            bool: トークンが有効かどうか
        """
        try:
            path, params = self.build_request([(-97.1, 31.5), (-97.1001, 31.5001)])
            response = await self._client.get(path, params=params)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Mapbox token validation failed: %s", e)
            return False
