"""
app/models/match.py

マップマッチングAPIのリクエスト・レスポンスモデル

公式ドキュメント:
- Pydantic Validators: https://docs.pydantic.dev/latest/concepts/validators/
- Pydantic Aliases: https://docs.pydantic.dev/latest/concepts/alias/
"""
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator

from .common import GeoJSONLineString, validate_position


# =============================================================================
# リクエスト
# =============================================================================

class MatchRequest(BaseModel):
    """
    POST /api/match のリクエストボディ

    座標数（2以上）はルーター側で検査し、400を返す。
    ここでは各座標の値のみ検証する。

    Attributes:
        coordinates (list[list[float]]): [[経度, 緯度], ...]
    """
    coordinates: list[list[float]] = Field(
        ...,
        description="座標配列 [[経度, 緯度], ...]",
        examples=[[[-97.1, 31.5], [-97.101, 31.501]]],
    )

    @field_validator("coordinates")
    @classmethod
    def check_positions(cls, value: list[list[float]]) -> list[list[float]]:
        """各座標が有効な経度・緯度であることを確認"""
        return [list(validate_position(position)) for position in value]

    def to_sequence(self) -> list[tuple[float, float]]:
        """座標列 [(経度, 緯度), ...] に変換"""
        return [(lon, lat) for lon, lat in self.coordinates]


# =============================================================================
# レスポンス
# =============================================================================

class MatchResponse(BaseModel):
    """
    POST /api/match のレスポンス

    Attributes:
        matched_geometries: マッチング済みジオメトリ（入力順）
    """
    matched_geometries: list[GeoJSONLineString] = Field(
        ...,
        alias="matchedGeometries",
        description="マッチング済みジオメトリ（入力順）",
    )

    model_config = {"populate_by_name": True}


class SegmentStatus(str, Enum):
    """
    トラックセグメントの処理結果

    Values:
        MATCHED: マッチング成功
        SKIPPED: 座標数不足でスキップ
        FAILED: Mapbox API エラーで中断
    """
    MATCHED = "matched"
    SKIPPED = "skipped"
    FAILED = "failed"


class SegmentResult(BaseModel):
    """
    セグメント単位のマッチング結果

    失敗したセグメントの部分結果は含めない（セグメント単位で全か無か）。
    """
    index: int = Field(..., description="ファイル内のセグメント番号（0始まり）")
    status: SegmentStatus
    coordinate_count: int = Field(..., alias="coordinateCount")
    matched_geometries: list[GeoJSONLineString] = Field(
        default_factory=list,
        alias="matchedGeometries",
    )
    error: Optional[str] = Field(default=None, description="ユーザー向けエラーメッセージ")

    model_config = {"populate_by_name": True}


class UploadMatchResponse(BaseModel):
    """
    POST /api/match/upload のレスポンス

    Attributes:
        format: 判定したファイル形式（"gpx" / "geojson"）
        original_tracks: 元のトラック（セグメントごとの座標列）
        segments: セグメントごとの処理結果
        matched_geometries: 成功したセグメントのジオメトリを入力順に連結したもの
        bounds: 表示範囲 [最小経度, 最小緯度, 最大経度, 最大緯度]
    """
    format: str
    original_tracks: list[list[list[float]]] = Field(..., alias="originalTracks")
    segments: list[SegmentResult]
    matched_geometries: list[GeoJSONLineString] = Field(..., alias="matchedGeometries")
    bounds: Optional[list[float]] = Field(
        default=None,
        description="[最小経度, 最小緯度, 最大経度, 最大緯度]",
    )

    model_config = {"populate_by_name": True}


class TokenResponse(BaseModel):
    """GET /api/mapbox-token のレスポンス"""
    access_token: str = Field(..., alias="accessToken")

    model_config = {"populate_by_name": True}
