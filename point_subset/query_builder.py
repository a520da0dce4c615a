# ============================================================================
# MODULE CONTEXT - SPATIAL-TEMPORAL QUERY BUILDER
# ============================================================================
# STATUS: Standalone Module - Parameterized subset queries
# PURPOSE: Build bbox-overlap + half-open time-range queries against a point table
# EXPORTS: QuerySpec, build_query, build_time_bounds_query, build_reference_system_query
# DEPENDENCIES: psycopg.sql
# VALIDATION: Bounding box and time window invariants checked before composition
# PATTERNS: Query Builder, SQL Composition
# ============================================================================

"""
Spatial-Temporal Query Builder

Produces a query of the form:

    SELECT id AS point_id, ST_AsText(geom) AS geom_wkt, time AS observed_at
    FROM schema.table
    WHERE geom && ST_MakeEnvelope(minx, miny, maxx, maxy, srid)
      AND time >= start AND time < end
    ORDER BY time, id

The spatial predicate is the index-backed bounding-box overlap operator (&&),
so a point on the box boundary matches. Stricter containment is a separate
post-filter (QuerySpec.matches mirrors the SQL predicate for that purpose).

Safety:
- Identifiers via sql.Identifier(), values via %s placeholders
- No string concatenation of caller input
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from psycopg import sql

from .models import BoundingBox, TimeWindow, ReferenceSystemLike, normalize_reference_system, srid_of

logger = logging.getLogger(__name__)

# Column aliases the reconstructor reads
ID_ALIAS = "point_id"
GEOMETRY_ALIAS = "geom_wkt"
TIME_ALIAS = "observed_at"


@dataclass(frozen=True)
class QuerySpec:
    """
    A composed subset query plus the inputs it was built from.

    Attributes:
        statement: Composed SQL statement
        params: Values for the %s placeholders, in order
        bbox: Validated bounding box
        time_window: Validated time window
        reference_system: Reference system of the returned geometries
        columns: Output column aliases, in select order
    """
    statement: sql.Composed
    params: Tuple[Any, ...]
    bbox: BoundingBox
    time_window: TimeWindow
    reference_system: str
    columns: Tuple[str, ...] = field(default=(ID_ALIAS, GEOMETRY_ALIAS, TIME_ALIAS))

    @property
    def is_empty_window(self) -> bool:
        return self.time_window.is_empty

    def matches(self, x: float, y: float, timestamp: datetime) -> bool:
        """
        Evaluate the query predicate in memory.

        Only meaningful when (x, y) are in the bbox reference system.
        """
        return self.bbox.overlaps(x, y) and self.time_window.contains(timestamp)


def _table_identifier(table: str, schema: Optional[str]) -> sql.Composable:
    if schema:
        return sql.Identifier(schema, table)
    return sql.Identifier(table)


def _envelope_expression(
    bbox: BoundingBox,
    storage_reference_system: Optional[str]
) -> Tuple[sql.Composable, List[Any]]:
    """ST_MakeEnvelope in the bbox SRID, transformed when storage differs."""
    envelope = sql.SQL("ST_MakeEnvelope(%s, %s, %s, %s, %s)")
    params: List[Any] = [bbox.min_x, bbox.min_y, bbox.max_x, bbox.max_y, srid_of(bbox.reference_system)]

    if storage_reference_system and storage_reference_system != bbox.reference_system:
        logger.debug(
            f"Reprojecting bbox from EPSG:{bbox.reference_system} to EPSG:{storage_reference_system}"
        )
        envelope = sql.SQL("ST_Transform({envelope}, %s)").format(envelope=envelope)
        params.append(srid_of(storage_reference_system))

    return envelope, params


def build_query(
    table: str,
    geometry_column: str,
    time_column: str,
    bbox: BoundingBox,
    time_window: TimeWindow,
    id_column: str = "ogc_fid",
    schema: Optional[str] = None,
    storage_reference_system: Optional[ReferenceSystemLike] = None,
    extra_columns: Optional[Sequence[str]] = None,
    limit: Optional[int] = None
) -> QuerySpec:
    """
    Build a bbox + time-window subset query.

    Args:
        table: Point table name
        geometry_column: Point geometry column
        time_column: Timestamp column
        bbox: Bounding box with an explicit reference system
        time_window: Half-open interval [start, end)
        id_column: Primary key column, returned as point_id
        schema: Optional schema qualifying the table
        storage_reference_system: Reference system of the stored geometries.
            When given and different from the bbox's, the envelope is
            reprojected in SQL and the result carries the storage system.
        extra_columns: Additional columns to select (returned under their own names)
        limit: Optional row cap

    Returns:
        QuerySpec

    Raises:
        InvalidBoundingBox: min > max on either axis
        InvalidTimeWindow: start > end
    """
    bbox.ensure_valid()
    time_window.ensure_valid()

    if not table or not geometry_column or not time_column or not id_column:
        raise ValueError("table, geometry_column, time_column and id_column are required")

    storage = normalize_reference_system(storage_reference_system) if storage_reference_system else None
    envelope, envelope_params = _envelope_expression(bbox, storage)

    extras = [c for c in (extra_columns or []) if c not in (id_column, geometry_column, time_column)]
    select_list = [
        sql.SQL("{col} AS {alias}").format(col=sql.Identifier(id_column), alias=sql.Identifier(ID_ALIAS)),
        sql.SQL("ST_AsText({col}) AS {alias}").format(
            col=sql.Identifier(geometry_column), alias=sql.Identifier(GEOMETRY_ALIAS)
        ),
        sql.SQL("{col} AS {alias}").format(col=sql.Identifier(time_column), alias=sql.Identifier(TIME_ALIAS)),
    ]
    select_list.extend(sql.Identifier(c) for c in extras)

    query = sql.SQL("""
        SELECT {select_list}
        FROM {table}
        WHERE {geom_col} && {envelope}
          AND {time_col} >= %s AND {time_col} < %s
        ORDER BY {time_col}, {id_col}
    """).format(
        select_list=sql.SQL(", ").join(select_list),
        table=_table_identifier(table, schema),
        geom_col=sql.Identifier(geometry_column),
        envelope=envelope,
        time_col=sql.Identifier(time_column),
        id_col=sql.Identifier(id_column)
    )

    params: List[Any] = envelope_params + [time_window.start, time_window.end]

    if limit is not None:
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        query = query + sql.SQL(" LIMIT %s")
        params.append(limit)

    logger.debug(
        f"Built subset query on '{table}': bbox={bbox.as_tuple()} EPSG:{bbox.reference_system}, "
        f"window=[{time_window.start.isoformat()}, {time_window.end.isoformat()})"
    )

    return QuerySpec(
        statement=query,
        params=tuple(params),
        bbox=bbox,
        time_window=time_window,
        reference_system=storage or bbox.reference_system,
        columns=(ID_ALIAS, GEOMETRY_ALIAS, TIME_ALIAS) + tuple(extras)
    )


def build_time_bounds_query(
    table: str,
    time_column: str,
    schema: Optional[str] = None
) -> sql.Composed:
    """min/max of the time column, used to seed a time-range control."""
    return sql.SQL("""
        SELECT min({time_col}) AS time_min, max({time_col}) AS time_max
        FROM {table}
    """).format(
        time_col=sql.Identifier(time_column),
        table=_table_identifier(table, schema)
    )


def build_reference_system_query(
    table: str,
    geometry_column: str,
    schema: Optional[str] = None
) -> sql.Composed:
    """
    Distinct authority codes of the geometries stored in a table.

    Joins the distinct ST_SRID values against spatial_ref_sys so the result is
    the EPSG code, not the internal SRID.
    """
    return sql.SQL("""
        SELECT DISTINCT s.auth_name, s.auth_srid
        FROM (
            SELECT DISTINCT ST_SRID({geom_col}) AS srid
            FROM {table}
            WHERE {geom_col} IS NOT NULL
        ) g
        JOIN spatial_ref_sys s ON s.srid = g.srid
        ORDER BY s.auth_srid
    """).format(
        geom_col=sql.Identifier(geometry_column),
        table=_table_identifier(table, schema)
    )
