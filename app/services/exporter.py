"""
app/services/exporter.py

マッチング結果のエクスポート

マッチング結果を GeoJSON Feature（MultiLineString）に変換する。
ダウンロードファイル名は matched-route.geojson。
"""
from typing import Optional

from app.models.common import GeoJSONFeature, GeoJSONLineString, GeoJSONMultiLineString
from app.services.batching import Coordinate
from app.services.errors import NoMatchedRoute


EXPORT_FILENAME = "matched-route.geojson"
EXPORT_MEDIA_TYPE = "application/geo+json"


def build_export_feature(result: Optional[list[GeoJSONLineString]]) -> GeoJSONFeature:
    """
    マッチング結果を GeoJSON Feature に変換

    ジオメトリごとに1本の LineString を持つ MultiLineString とする。

    Args:
        result: マッチング結果

    Returns:
        GeoJSONFeature

    Raises:
        NoMatchedRoute: マッチング結果がない
    """
    if not result:
        raise NoMatchedRoute()

    return GeoJSONFeature(
        geometry=GeoJSONMultiLineString(
            coordinates=[geometry.coordinates for geometry in result],
        ),
    )


def flatten_result(result: list[GeoJSONLineString]) -> list[list[float]]:
    """マッチング結果を1本の座標列に連結"""
    return [position for geometry in result for position in geometry.coordinates]


def compute_bounds(lines) -> Optional[list[float]]:
    """
    表示範囲を計算

    Args:
        lines: 座標列のリスト [[(経度, 緯度), ...], ...]

    Returns:
        [最小経度, 最小緯度, 最大経度, 最大緯度]（座標がない場合はNone）
    """
    positions: list[Coordinate] = [
        (position[0], position[1]) for line in lines for position in line
    ]
    if not positions:
        return None

    lons = [lon for lon, _ in positions]
    lats = [lat for _, lat in positions]
    return [min(lons), min(lats), max(lons), max(lats)]
