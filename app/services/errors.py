"""
app/services/errors.py

マップマッチング処理の例外定義

ルーターはこれらの例外をHTTPステータスコードに変換する:
- ParseError              -> 400
- InsufficientCoordinates -> 400
- NoMatchedRoute          -> 404
- UpstreamError           -> 500
"""
from typing import Optional


class MapMatchingError(Exception):
    """マップマッチング処理の基底例外"""


class ParseError(MapMatchingError):
    """GPX / GeoJSON の解析に失敗"""


class InsufficientCoordinates(MapMatchingError):
    """
    座標数不足

    マッチングには最低2座標が必要。
    """

    def __init__(self, count: int):
        self.count = count
        super().__init__(
            f"At least 2 coordinates are required for map matching (got {count})."
        )


class UpstreamError(MapMatchingError):
    """
    Mapbox Map Matching API の呼び出し失敗

    通信エラー、2xx以外のステータス、code != "Ok"、不正なレスポンスを含む。

    Attributes:
        status_code (Optional[int]): HTTPステータスコード（通信エラー時はNone）
        code (Optional[str]): Mapboxのレスポンスコード（例: "NoMatch"）
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class NoMatchedRoute(MapMatchingError):
    """エクスポート対象のマッチング結果が存在しない"""

    def __init__(self):
        super().__init__("No matched route to export.")
