"""
app/models/__init__.py

モデルパッケージ

すべてのモデルをこのパッケージからインポート可能にする。

使用例:
    from app.models import MatchRequest, MatchResponse, GeoJSONLineString
"""
from .common import (
    ErrorResponse,
    GeoJSONLineString,
    GeoJSONMultiLineString,
    GeoJSONFeature,
    validate_position,
)
from .match import (
    MatchRequest,
    MatchResponse,
    SegmentStatus,
    SegmentResult,
    UploadMatchResponse,
    TokenResponse,
)
__all__ = [
    # common
    "ErrorResponse",
    "GeoJSONLineString",
    "GeoJSONMultiLineString",
    "GeoJSONFeature",
    "validate_position",
    # match
    "MatchRequest",
    "MatchResponse",
    "SegmentStatus",
    "SegmentResult",
    "UploadMatchResponse",
    "TokenResponse",
]
