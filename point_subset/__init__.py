# ============================================================================
# MODULE CONTEXT - POINT SUBSET MODULE
# ============================================================================
# STATUS: Standalone Module - Spatial-temporal subsetting of PostGIS point tables
# PURPOSE: Bbox + time-window queries reconstructed into in-memory point collections
# EXPORTS: build_query, reconstruct, encode_point, decode_point, SubsetSession,
#          PointSubsetService, models and exceptions
# DEPENDENCIES: psycopg, pydantic, shapely, pyproj, azure-functions
# ENTRY_POINTS: from point_subset import PointSubsetService, SubsetSession
# ============================================================================

"""
Point Subset - PostGIS Spatial-Temporal Subsetting

Architecture:
    point_subset/
    ├── config.py         # Environment-based configuration
    ├── exceptions.py     # Error taxonomy
    ├── models.py         # BoundingBox, TimeWindow, PointRecord, PointCollection
    ├── geometry.py       # WKT point codec (shapely)
    ├── query_builder.py  # bbox && + half-open time range SQL (psycopg.sql)
    ├── reconstructor.py  # Rows -> PointCollection with diagnostics
    ├── repository.py     # PostGIS access on explicit connections
    ├── service.py        # One-shot subset queries
    ├── session.py        # Interactive time-range session (state machine)
    ├── display.py        # Reprojection to lon/lat and GeoJSON rendering (pyproj)
    ├── raster.py         # Raster sampling along step paths
    └── triggers.py       # Azure Functions HTTP handlers

Integration:
    from point_subset import get_subset_triggers

    for trigger in get_subset_triggers():
        app.route(route=trigger['route'], methods=trigger['methods'])(trigger['handler'])
"""

from .config import PointSubsetConfig, get_subset_config
from .exceptions import (
    AmbiguousReferenceSystem,
    DuplicateIdentifier,
    InvalidBoundingBox,
    InvalidTimeWindow,
    MalformedGeometry,
    MixedReferenceSystem,
    PointSubsetError,
    QueryCancelled,
    QueryFailed,
    SessionStateError,
    UnknownReferenceSystem,
)
from .geometry import decode_point, encode_point
from .models import BoundingBox, GeometryDiagnostic, PointCollection, PointRecord, TimeWindow
from .query_builder import QuerySpec, build_query
from .reconstructor import reconstruct
from .repository import SubsetRepository, TimeBounds
from .service import PointSubsetService
from .session import SessionState, SubsetSession
from .display import GeoJSONDisplay, MapDisplay, to_feature_collection, to_trajectory_feature
from .raster import PostGISRasterSampler, RasterSampler
from .triggers import get_subset_triggers

__version__ = "1.0.0"
__all__ = [
    "PointSubsetConfig",
    "get_subset_config",
    "PointSubsetError",
    "InvalidBoundingBox",
    "InvalidTimeWindow",
    "MalformedGeometry",
    "DuplicateIdentifier",
    "AmbiguousReferenceSystem",
    "UnknownReferenceSystem",
    "MixedReferenceSystem",
    "QueryFailed",
    "QueryCancelled",
    "SessionStateError",
    "encode_point",
    "decode_point",
    "BoundingBox",
    "TimeWindow",
    "PointRecord",
    "GeometryDiagnostic",
    "PointCollection",
    "QuerySpec",
    "build_query",
    "reconstruct",
    "SubsetRepository",
    "TimeBounds",
    "PointSubsetService",
    "SubsetSession",
    "SessionState",
    "MapDisplay",
    "GeoJSONDisplay",
    "to_feature_collection",
    "to_trajectory_feature",
    "RasterSampler",
    "PostGISRasterSampler",
    "get_subset_triggers",
]
