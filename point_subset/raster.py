# ============================================================================
# MODULE CONTEXT - RASTER BOUNDARY
# ============================================================================
# STATUS: Adapter - Raster sampling along trajectory steps
# PURPOSE: Mean raster value (e.g. elevation) along each step's path geometry
# EXPORTS: RasterSampler, PostGISRasterSampler
# DEPENDENCIES: psycopg, psycopg.sql, util_logger
# SOURCE: PostGIS raster tables (postgis_raster extension)
# PATTERNS: Protocol + repository implementation, SQL Composition
# ============================================================================

"""
Raster Boundary

Samples a stored raster along the path of each trajectory step and returns
one aggregate per step identifier:

    step_id -> mean of ST_Value(raster, vertex) over the step's path vertices

Vertices are transformed into the raster's SRID before sampling, and
vertices that fall outside every tile (or on nodata) are ignored. A step
with no sampled vertex maps to None.
"""

from typing import Any, Dict, Optional, Protocol, Sequence

import psycopg
from psycopg import sql

from util_logger import ComponentType, LoggerFactory

from .exceptions import QueryFailed

logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "PostGISRasterSampler")


class RasterSampler(Protocol):
    """Per-step aggregate of a raster along step paths."""

    def sample_path_mean(
        self,
        conn: psycopg.Connection,
        steps_table: str,
        step_id_column: str,
        path_column: str,
        raster_table: str,
        raster_column: str = "rast",
        step_ids: Optional[Sequence[Any]] = None
    ) -> Dict[Any, Optional[float]]:
        ...


class PostGISRasterSampler:
    """RasterSampler backed by PostGIS raster functions."""

    def __init__(self, schema: Optional[str] = None, band: int = 1):
        self.schema = schema
        self.band = band

    def _table(self, name: str) -> sql.Composable:
        return sql.Identifier(self.schema, name) if self.schema else sql.Identifier(name)

    def build_query(
        self,
        steps_table: str,
        step_id_column: str,
        path_column: str,
        raster_table: str,
        raster_column: str = "rast",
        step_ids: Optional[Sequence[Any]] = None
    ) -> tuple:
        """Composed SQL and params for sample_path_mean."""
        step_filter = sql.SQL("")
        params: list = [self.band]
        if step_ids is not None:
            step_filter = sql.SQL("WHERE s.{id_col} = ANY(%s)").format(id_col=sql.Identifier(step_id_column))
            params.append(list(step_ids))

        query = sql.SQL("""
            SELECT s.{id_col} AS step_id, AVG(v.value) AS mean_value
            FROM {steps} s
            CROSS JOIN LATERAL ST_DumpPoints(s.{path_col}) AS dp
            LEFT JOIN LATERAL (
                SELECT ST_Value(r.{rast_col}, %s, ST_Transform(dp.geom, ST_SRID(r.{rast_col}))) AS value
                FROM {raster} r
                WHERE ST_Intersects(r.{rast_col}, ST_Transform(dp.geom, ST_SRID(r.{rast_col})))
                LIMIT 1
            ) v ON true
            {step_filter}
            GROUP BY s.{id_col}
            ORDER BY s.{id_col}
        """).format(
            id_col=sql.Identifier(step_id_column),
            steps=self._table(steps_table),
            path_col=sql.Identifier(path_column),
            rast_col=sql.Identifier(raster_column),
            raster=self._table(raster_table),
            step_filter=step_filter
        )
        return query, tuple(params)

    def sample_path_mean(
        self,
        conn: psycopg.Connection,
        steps_table: str,
        step_id_column: str,
        path_column: str,
        raster_table: str,
        raster_column: str = "rast",
        step_ids: Optional[Sequence[Any]] = None
    ) -> Dict[Any, Optional[float]]:
        """
        Raises:
            QueryFailed: Database error (missing raster extension, bad table, ...)
        """
        query, params = self.build_query(
            steps_table, step_id_column, path_column, raster_table, raster_column, step_ids
        )
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Raster sampling failed on '{raster_table}': {e}")
            raise QueryFailed(f"Raster sampling failed on '{raster_table}': {e}") from e

        result: Dict[Any, Optional[float]] = {}
        for row in rows:
            step_id, mean_value = (row["step_id"], row["mean_value"]) if isinstance(row, dict) else row
            result[step_id] = float(mean_value) if mean_value is not None else None

        logger.info(f"Sampled '{raster_table}' along {len(result)} steps")
        return result
