"""
app/services/track_parser.py

GPX / GeoJSON トラックのパーサー

アップロードされたファイルの内容からセグメントごとの座標列を抽出する。

- GPX: trk > trkseg > trkpt（トラックがない場合は rte > rtept）
- GeoJSON: FeatureCollection / Feature / ジオメトリ単体
  （LineString と MultiLineString のみ対象）

公式ドキュメント:
- gpxpy: https://github.com/tkrajina/gpxpy
- GPX 1.1 Schema: https://www.topografix.com/GPX/1/1/
- GeoJSON (RFC 7946): https://datatracker.ietf.org/doc/html/rfc7946
"""
import json
import logging
from typing import Optional

import gpxpy
import gpxpy.gpx

from app.models.common import validate_position
from app.services.batching import Coordinate
from app.services.errors import ParseError


logger = logging.getLogger(__name__)


# =============================================================================
# 定数定義
# =============================================================================

# 拡張子 → 形式
FORMATS = {
    "gpx": "gpx",
    "geojson": "geojson",
    "json": "geojson",
}


def detect_format(filename: Optional[str]) -> Optional[str]:
    """
    ファイル名の拡張子から形式を判定

    Args:
        filename: ファイル名

    Returns:
        "gpx" / "geojson"（判定できない場合はNone）
    """
    if not filename or "." not in filename:
        return None
    extension = filename.rsplit(".", 1)[-1].lower()
    return FORMATS.get(extension)


def parse_track(raw_text: str, fmt: str) -> list[list[Coordinate]]:
    """
    トラックを解析してセグメントごとの座標列を返す

    Args:
        raw_text: ファイルの内容
        fmt: "gpx" / "geojson"

    Returns:
        セグメントごとの座標列 [[(経度, 緯度), ...], ...]

    Raises:
        ParseError: 形式不明、解析失敗、座標が1つもない
    """
    if fmt == "gpx":
        sequences = _parse_gpx(raw_text)
    elif fmt == "geojson":
        sequences = _parse_geojson(raw_text)
    else:
        raise ParseError(f"Unsupported file format: {fmt}")

    sequences = [sequence for sequence in sequences if sequence]
    if not sequences:
        raise ParseError(f"No coordinates found in {fmt.upper()} file")
    return sequences


# =============================================================================
# GPX
# =============================================================================

def _parse_gpx(raw_text: str) -> list[list[Coordinate]]:
    """GPXからセグメントごとの座標列を抽出"""
    try:
        gpx = gpxpy.parse(raw_text)
    except gpxpy.gpx.GPXException as e:
        logger.warning("Error parsing GPX: %s", e)
        raise ParseError("Error parsing GPX file") from e

    sequences = []
    for track in gpx.tracks:
        for segment in track.segments:
            sequences.append([
                _to_coordinate([point.longitude, point.latitude])
                for point in segment.points
            ])

    # トラックがない場合はルートを使用
    if not gpx.tracks:
        for route in gpx.routes:
            sequences.append([
                _to_coordinate([point.longitude, point.latitude])
                for point in route.points
            ])

    return sequences


# =============================================================================
# GeoJSON
# =============================================================================

def _parse_geojson(raw_text: str) -> list[list[Coordinate]]:
    """GeoJSONからセグメントごとの座標列を抽出"""
    try:
        geojson = json.loads(raw_text)
    except ValueError as e:
        logger.warning("Error parsing GeoJSON: %s", e)
        raise ParseError("Error parsing GeoJSON file") from e

    if not isinstance(geojson, dict):
        raise ParseError("Error parsing GeoJSON file")

    geojson_type = geojson.get("type")
    if geojson_type == "FeatureCollection":
        geometries = [
            feature.get("geometry")
            for feature in geojson.get("features") or []
            if isinstance(feature, dict)
        ]
    elif geojson_type == "Feature":
        geometries = [geojson.get("geometry")]
    else:
        geometries = [geojson]

    sequences = []
    for geometry in geometries:
        sequences.extend(_geometry_to_sequences(geometry))
    return sequences


def _geometry_to_sequences(geometry) -> list[list[Coordinate]]:
    """LineString / MultiLineString を座標列に変換（それ以外は無視）"""
    if not isinstance(geometry, dict):
        return []

    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        if geometry_type in ("LineString", "MultiLineString"):
            raise ParseError(f"{geometry_type} has no coordinates")
        return []

    if geometry_type == "LineString":
        lines = [coordinates]
    elif geometry_type == "MultiLineString":
        lines = coordinates
    else:
        logger.info("Ignoring GeoJSON geometry of type %s", geometry_type)
        return []

    sequences = []
    for line in lines:
        if not isinstance(line, list):
            raise ParseError("Invalid GeoJSON coordinates")
        sequences.append([_to_coordinate(position) for position in line])
    return sequences


def _to_coordinate(position) -> Coordinate:
    """位置を検証して (経度, 緯度) に変換"""
    try:
        return validate_position(position)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid coordinate: {position}") from e
