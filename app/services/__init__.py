"""
app/services/__init__.py

サービスパッケージ
"""
from .errors import (
    MapMatchingError,
    ParseError,
    InsufficientCoordinates,
    UpstreamError,
    NoMatchedRoute,
)
from .batching import partition_batches
from .pacing import RequestPacer
from .orchestrator import BatchOrchestrator, SegmentOutcome
from .mapbox_client import MapboxClient
from .track_parser import parse_track, detect_format
from .exporter import build_export_feature, flatten_result, compute_bounds

__all__ = [
    "MapMatchingError",
    "ParseError",
    "InsufficientCoordinates",
    "UpstreamError",
    "NoMatchedRoute",
    "partition_batches",
    "RequestPacer",
    "BatchOrchestrator",
    "SegmentOutcome",
    "MapboxClient",
    "parse_track",
    "detect_format",
    "build_export_feature",
    "flatten_result",
    "compute_bounds",
]
