"""
app/models/common.py

共通モデル定義

このファイルは、API全体で使用される共通のデータモデルを定義します。
エラーレスポンスとGeoJSONジオメトリを含みます。

公式ドキュメント:
- Pydantic V2: https://docs.pydantic.dev/latest/
- FastAPI Response Model: https://fastapi.tiangolo.com/tutorial/response-model/
- GeoJSON (RFC 7946): https://datatracker.ietf.org/doc/html/rfc7946
"""
import math
from typing import Literal
from pydantic import BaseModel, Field


# =============================================================================
# 座標バリデーション
# =============================================================================

# 経度・緯度の範囲
LON_RANGE = (-180.0, 180.0)
LAT_RANGE = (-90.0, 90.0)


def validate_position(position: list[float]) -> tuple[float, float]:
    """
    GeoJSON position を (経度, 緯度) に変換・検証

    3要素目以降（標高など）は無視する。

    Args:
        position: [経度, 緯度, (標高)]

    Returns:
        (経度, 緯度) のタプル

    Raises:
        ValueError: 要素不足、非有限値、範囲外
    """
    if not isinstance(position, (list, tuple)) or len(position) < 2:
        raise ValueError(f"座標は [経度, 緯度] の形式で指定してください: {position}")
    if any(
        isinstance(value, bool) or not isinstance(value, (int, float))
        for value in position[:2]
    ):
        raise ValueError(f"経度・緯度は数値で指定してください: {position}")

    lon, lat = float(position[0]), float(position[1])
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValueError(f"座標が有限値ではありません: {position}")
    if not (LON_RANGE[0] <= lon <= LON_RANGE[1]):
        raise ValueError(f"経度が範囲外です: {lon}")
    if not (LAT_RANGE[0] <= lat <= LAT_RANGE[1]):
        raise ValueError(f"緯度が範囲外です: {lat}")
    return lon, lat


# =============================================================================
# エラーモデル
# =============================================================================

class ErrorResponse(BaseModel):
    """
    エラーレスポンスモデル

    Attributes:
        error (str): ユーザー向けエラーメッセージ
    """
    error: str = Field(
        ...,
        description="ユーザー向けエラーメッセージ",
        examples=["At least 2 coordinates are required for map matching."]
    )


# =============================================================================
# GeoJSON関連モデル
# =============================================================================

class GeoJSONLineString(BaseModel):
    """
    GeoJSON LineString型

    マッチング結果のジオメトリを表現するために使用。
    Mapboxが返すジオメトリをそのまま保持するため、座標数の下限は設けない。

    GeoJSON仕様: https://datatracker.ietf.org/doc/html/rfc7946#section-3.1.4

    Attributes:
        type (str): 常に "LineString"
        coordinates (list[list[float]]): [[経度, 緯度], ...]の配列
    """
    type: Literal["LineString"] = "LineString"
    coordinates: list[list[float]] = Field(
        ...,
        description="座標配列 [[経度, 緯度], ...]",
        examples=[[[135.7588, 34.9858], [135.7500, 35.0000], [135.7482, 35.0142]]]
    )


class GeoJSONMultiLineString(BaseModel):
    """
    GeoJSON MultiLineString型

    GeoJSON仕様: https://datatracker.ietf.org/doc/html/rfc7946#section-3.1.5
    """
    type: Literal["MultiLineString"] = "MultiLineString"
    coordinates: list[list[list[float]]] = Field(
        ...,
        description="LineStringごとの座標配列",
    )


class GeoJSONFeature(BaseModel):
    """
    GeoJSON Feature型（エクスポート用）

    GeoJSON仕様: https://datatracker.ietf.org/doc/html/rfc7946#section-3.2
    """
    type: Literal["Feature"] = "Feature"
    properties: dict = Field(default_factory=dict)
    geometry: GeoJSONMultiLineString
