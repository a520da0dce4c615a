# ============================================================================
# MODULE CONTEXT - POINT SUBSET SERVICE
# ============================================================================
# STATUS: Service Layer - One-shot subset queries
# PURPOSE: Validate -> resolve reference system -> query -> reconstruct -> render
# EXPORTS: PointSubsetService
# DEPENDENCIES: repository, query_builder, reconstructor, display
# PATTERNS: Service Layer, Facade Pattern
# ENTRY_POINTS: service = PointSubsetService(); collection = service.subset(bbox, window)
# ============================================================================

"""
Point Subset Service - Business Logic Layer

Non-interactive entry point used by the HTTP triggers and by scripts:

    service = PointSubsetService()
    collection = service.subset(
        BoundingBox(min_x=6400000, min_y=1950000, max_x=6500000, max_y=2050000,
                    reference_system="2229"),
        TimeWindow(start=datetime(1990, 1, 1), end=datetime(2000, 1, 1))
    )

Inputs are validated before any connection is opened. A connection can be
passed in; otherwise one is opened for the call and closed afterwards.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Sequence, Union

import psycopg

from util_logger import ComponentType, LoggerFactory

from .config import PointSubsetConfig, get_subset_config
from .display import DisplayTransformer, to_feature_collection, to_trajectory_feature
from .exceptions import InvalidBoundingBox
from .models import BoundingBox, PointCollection, SubsetFeatureCollection, TimeWindow, validate_extent
from .query_builder import build_query
from .reconstructor import reconstruct
from .repository import SubsetRepository

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "PointSubsetService")

# A BoundingBox, or bare [minx, miny, maxx, maxy] in the table's own reference system
BboxLike = Union[BoundingBox, Sequence[float]]


class PointSubsetService:
    """
    Orchestrates subset queries between callers and the repository.

    Responsibilities:
    - Fail fast on invalid bbox / time window
    - Look up the stored reference system so the bbox can be reprojected in SQL
    - Reconstruct rows into a PointCollection
    - Render collections as GeoJSON for the HTTP layer
    """

    def __init__(self, config: Optional[PointSubsetConfig] = None,
                 repository: Optional[SubsetRepository] = None):
        self.config = config or get_subset_config()
        self.repository = repository or SubsetRepository(self.config)
        self.transformer = DisplayTransformer(self.config.display_crs)
        logger.info("PointSubsetService initialized")

    @contextmanager
    def _connection(self, conn: Optional[psycopg.Connection]) -> Iterator[psycopg.Connection]:
        """Use the caller's connection, or open one scoped to this call."""
        if conn is not None:
            yield conn
        else:
            with self.repository.connect() as new_conn:
                yield new_conn

    def subset(
        self,
        bbox: BboxLike,
        time_window: TimeWindow,
        table: Optional[str] = None,
        conn: Optional[psycopg.Connection] = None,
        limit: Optional[int] = None,
        extra_columns: Optional[Sequence[str]] = None
    ) -> PointCollection:
        """
        Points of table inside bbox with timestamps in [start, end).

        A bare coordinate sequence is taken to be in the table's storage
        reference system, resolved by the same lookup the query needs anyway.
        extra_columns are returned as record properties.

        Raises:
            InvalidBoundingBox / InvalidTimeWindow: Before contacting the database
            AmbiguousReferenceSystem / UnknownReferenceSystem: Table misconfigured
            DuplicateIdentifier: Row set repeats an identifier
            QueryFailed: Database error
        """
        if isinstance(bbox, BoundingBox):
            bbox.ensure_valid()
        else:
            bbox = list(bbox)
            if len(bbox) != 4:
                raise InvalidBoundingBox(
                    f"Bounding box needs 4 values (minx, miny, maxx, maxy), got {len(bbox)}"
                )
            validate_extent(*bbox)
        time_window.ensure_valid()
        table = table or self.config.default_table

        with self._connection(conn) as c:
            reference_system = self.repository.lookup_reference_system(
                c, table, self.config.geometry_column
            )
            if not isinstance(bbox, BoundingBox):
                bbox = BoundingBox.from_sequence(bbox, reference_system)
            spec = build_query(
                table=table,
                geometry_column=self.config.geometry_column,
                time_column=self.config.time_column,
                bbox=bbox,
                time_window=time_window,
                id_column=self.config.id_column,
                schema=self.repository.schema_name,
                storage_reference_system=reference_system,
                extra_columns=extra_columns,
                limit=limit
            )
            if spec.is_empty_window:
                logger.info(f"Zero-width time window on '{table}', skipping query")
                return PointCollection(reference_system=spec.reference_system)
            rows = self.repository.execute_subset(c, spec)

        collection = reconstruct(rows, spec.reference_system)
        logger.info(
            f"Subset of '{table}' returned {len(collection)} points "
            f"({len(collection.diagnostics)} dropped)"
        )
        return collection

    def subset_feature_collection(
        self,
        bbox: BboxLike,
        time_window: TimeWindow,
        table: Optional[str] = None,
        as_trajectory: bool = False,
        limit: Optional[int] = None,
        extra_columns: Optional[Sequence[str]] = None
    ) -> SubsetFeatureCollection:
        """subset() rendered as GeoJSON in the display reference system."""
        collection = self.subset(
            bbox, time_window, table=table, limit=limit, extra_columns=extra_columns
        )
        if as_trajectory:
            return to_trajectory_feature(collection, self.transformer)
        return to_feature_collection(collection, self.transformer)

    def get_extent(
        self,
        table: Optional[str] = None,
        conn: Optional[psycopg.Connection] = None
    ) -> Dict[str, Any]:
        """Reference system and time bounds of a table (seeds time-range controls)."""
        table = table or self.config.default_table
        with self._connection(conn) as c:
            reference_system = self.repository.lookup_reference_system(
                c, table, self.config.geometry_column
            )
            bounds = self.repository.fetch_time_bounds(c, table, self.config.time_column)

        return {
            "table": table,
            "reference_system": reference_system,
            **bounds.to_dict()
        }
