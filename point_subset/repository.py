# ============================================================================
# MODULE CONTEXT - POINT SUBSET REPOSITORY
# ============================================================================
# STATUS: Standalone Repository - PostGIS point table access
# PURPOSE: Execute subset queries, resolve reference systems, read time bounds
# EXPORTS: SubsetRepository, TimeBounds
# DEPENDENCIES: psycopg, infrastructure.postgresql, query_builder, util_logger
# SOURCE: PostgreSQL/PostGIS point tables (configurable schema)
# VALIDATION: psycopg.sql composition, psycopg errors wrapped in QueryFailed
# PATTERNS: Repository Pattern, explicit connection handles
# ENTRY_POINTS: repo = SubsetRepository(config); with repo.connect() as conn: ...
# ============================================================================

"""
Point Subset Repository - PostGIS Access

Every query method takes the connection as its first argument. Nothing here
opens a connection implicitly except connect(), inherited from
PostgreSQLRepository, which always closes what it opens.

Errors:
- psycopg.errors.QueryCanceled -> QueryCancelled
- any other psycopg.Error -> QueryFailed (original chained as __cause__)
- several authority codes for one table -> AmbiguousReferenceSystem
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg
from psycopg import errors as pg_errors

from infrastructure.postgresql import PostgreSQLRepository
from util_logger import ComponentType, LoggerFactory

from .config import PointSubsetConfig, get_subset_config
from .exceptions import AmbiguousReferenceSystem, QueryCancelled, QueryFailed, UnknownReferenceSystem
from .models import normalize_reference_system
from .query_builder import QuerySpec, build_reference_system_query, build_time_bounds_query

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "SubsetRepository")


@dataclass(frozen=True)
class TimeBounds:
    """Earliest and latest timestamp in a point table (None when the table is empty)."""
    time_min: Optional[datetime]
    time_max: Optional[datetime]

    @property
    def is_empty(self) -> bool:
        return self.time_min is None or self.time_max is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_min": self.time_min.isoformat() if self.time_min else None,
            "time_max": self.time_max.isoformat() if self.time_max else None
        }


class SubsetRepository(PostgreSQLRepository):
    """
    PostGIS repository for bbox/time subset queries.

    Thread Safety:
    - No connection is stored on the repository
    - One repository can serve several sessions, each with its own connection
    """

    def __init__(self, config: Optional[PointSubsetConfig] = None,
                 connection_string: Optional[str] = None):
        self.config = config or get_subset_config()
        super().__init__(
            connection_string=connection_string,
            schema_name=self.config.subset_schema,
            statement_timeout_seconds=self.config.query_timeout_seconds
        )
        logger.info(f"SubsetRepository initialized (schema: {self.schema_name})")

    def execute_subset(self, conn: psycopg.Connection, spec: QuerySpec) -> List[Dict[str, Any]]:
        """
        Run a subset query.

        Returns:
            Rows as dicts keyed by the QuerySpec column aliases

        Raises:
            QueryCancelled: Statement cancelled from another thread
            QueryFailed: Any other database error
        """
        try:
            with self.cursor(conn) as cur:
                cur.execute(spec.statement, spec.params)
                rows = cur.fetchall()
        except pg_errors.QueryCanceled as e:
            logger.info(f"Subset query cancelled: {e}")
            raise QueryCancelled(f"Subset query cancelled: {e}") from e
        except psycopg.Error as e:
            logger.error(f"Subset query failed: {e}")
            raise QueryFailed(f"Subset query failed: {e}") from e

        logger.debug(f"Subset query returned {len(rows)} rows")
        return rows

    def fetch_time_bounds(
        self,
        conn: psycopg.Connection,
        table: str,
        time_column: Optional[str] = None
    ) -> TimeBounds:
        """min/max timestamp of a table, used to seed a time-range control."""
        query = build_time_bounds_query(
            table,
            time_column or self.config.time_column,
            schema=self.schema_name
        )
        try:
            with self.cursor(conn) as cur:
                cur.execute(query)
                row = cur.fetchone()
        except psycopg.Error as e:
            logger.error(f"Time bounds query failed for '{table}': {e}")
            raise QueryFailed(f"Time bounds query failed for '{table}': {e}") from e

        if not row:
            return TimeBounds(None, None)
        return TimeBounds(row["time_min"], row["time_max"])

    def lookup_reference_system(
        self,
        conn: psycopg.Connection,
        table: str,
        geometry_column: Optional[str] = None
    ) -> str:
        """
        Resolve the EPSG code of the geometries stored in a table.

        Returns:
            Normalized EPSG code, e.g. "2229"

        Raises:
            AmbiguousReferenceSystem: More than one distinct code
            UnknownReferenceSystem: No code (empty table or SRID not in spatial_ref_sys)
            QueryFailed: Database error
        """
        query = build_reference_system_query(
            table,
            geometry_column or self.config.geometry_column,
            schema=self.schema_name
        )
        try:
            with self.cursor(conn) as cur:
                cur.execute(query)
                rows = cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Reference system lookup failed for '{table}': {e}")
            raise QueryFailed(f"Reference system lookup failed for '{table}': {e}") from e

        codes = {
            normalize_reference_system(row["auth_srid"])
            for row in rows
            if row.get("auth_srid") is not None
        }
        if len(codes) > 1:
            raise AmbiguousReferenceSystem(table, codes)
        if not codes:
            raise UnknownReferenceSystem(
                f"No authority code found for geometries in '{table}'"
            )

        code = codes.pop()
        logger.debug(f"Table '{table}' geometries are EPSG:{code}")
        return code

    def cancel(self, conn: psycopg.Connection) -> None:
        """Cancel the statement currently running on conn (safe to call from another thread)."""
        try:
            conn.cancel_safe()
        except psycopg.Error as e:
            logger.warning(f"Cancel request failed: {e}")
