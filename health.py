# ============================================================================
# MODULE CONTEXT - HEALTH CHECK MODULE
# ============================================================================
# STATUS: Core Infrastructure - Health Monitoring
# PURPOSE: Public and detailed health checks for the point subset service
# EXPORTS: get_public_health, get_detailed_health, get_app_identity, HealthStatus
# DEPENDENCIES: psycopg, infrastructure, point_subset, util_logger
# PATTERNS: Two-tier health checks (public/detailed)
# ============================================================================

"""
Health Check Module

1. Public Health (/api/health):
   - Status and timestamp only
   - Always returns 200 (status in body indicates health)

2. Detailed Health (/api/health/detailed):
   - Database connectivity with latency
   - Point table readiness: table present, reference system resolvable,
     GiST index on the geometry column and B-Tree index on the time column
   - Returns 503 if unhealthy

Missing indexes are non-critical (DEGRADED): queries still answer, only slower.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import psycopg

from infrastructure.postgresql import PostgreSQLRepository
from util_logger import ComponentType, LoggerFactory

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "HealthService")


class HealthStatus(str, Enum):
    """Health status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"      # Non-critical components failing
    UNHEALTHY = "unhealthy"    # Critical components failing


@dataclass
class CheckResult:
    """Result of a single health check."""
    status: str              # "pass" or "fail"
    latency_ms: float
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "status": self.status,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message
        }
        if self.details:
            result["details"] = self.details
        return result


def get_app_identity() -> Dict[str, str]:
    return {
        "name": "pgpointsubset",
        "description": "PostGIS point subset service"
    }


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000


def check_database_connectivity(repository: Optional[PostgreSQLRepository] = None) -> CheckResult:
    """
    SELECT 1 against the database. Critical check.
    """
    start_time = time.perf_counter()
    repository = repository or PostgreSQLRepository(statement_timeout_seconds=5)

    try:
        with repository.connect() as conn:
            conn.execute("SELECT 1").fetchone()
    except (psycopg.Error, ValueError) as e:
        logger.error(f"Database connectivity check failed: {e}")
        return CheckResult(
            status="fail",
            latency_ms=_elapsed_ms(start_time),
            message=f"Database connection failed: {type(e).__name__}",
            details={"error": str(e)}
        )

    return CheckResult(
        status="pass",
        latency_ms=_elapsed_ms(start_time),
        message="PostgreSQL connection successful"
    )


def _index_methods(conn: psycopg.Connection, schema: str, table: str, column: str) -> List[str]:
    """Access methods (gist, btree, ...) of indexes whose first key is column."""
    rows = conn.execute("""
        SELECT am.amname AS method
        FROM pg_index i
        JOIN pg_class t ON t.oid = i.indrelid
        JOIN pg_namespace n ON n.oid = t.relnamespace
        JOIN pg_class ic ON ic.oid = i.indexrelid
        JOIN pg_am am ON am.oid = ic.relam
        JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = i.indkey[0]
        WHERE n.nspname = %s AND t.relname = %s AND a.attname = %s
    """, (schema, table, column)).fetchall()
    return [row["method"] for row in rows]


def check_point_table() -> Dict[str, CheckResult]:
    """
    Readiness of the default point table.

    Returns:
        {"point_table": critical result, "indexes": non-critical result}
    """
    from point_subset import PointSubsetError, SubsetRepository, get_subset_config

    start_time = time.perf_counter()
    config = get_subset_config()
    repository = SubsetRepository(config)
    table = config.default_table

    try:
        with repository.connect() as conn:
            if not repository.table_exists(conn, table):
                return {
                    "point_table": CheckResult(
                        status="fail",
                        latency_ms=_elapsed_ms(start_time),
                        message=f"Table '{config.subset_schema}.{table}' does not exist",
                        details={"schema": config.subset_schema, "table": table, "exists": False}
                    )
                }

            reference_system = repository.lookup_reference_system(conn, table)
            geometry_methods = _index_methods(conn, config.subset_schema, table, config.geometry_column)
            time_methods = _index_methods(conn, config.subset_schema, table, config.time_column)

    except (PointSubsetError, psycopg.Error) as e:
        logger.error(f"Point table check failed: {e}")
        return {
            "point_table": CheckResult(
                status="fail",
                latency_ms=_elapsed_ms(start_time),
                message=f"Point table check failed: {type(e).__name__}",
                details={"error": str(e)}
            )
        }

    latency_ms = _elapsed_ms(start_time)
    missing = []
    if "gist" not in geometry_methods:
        missing.append(f"GiST index on {config.geometry_column}")
    if "btree" not in time_methods:
        missing.append(f"B-Tree index on {config.time_column}")

    return {
        "point_table": CheckResult(
            status="pass",
            latency_ms=latency_ms,
            message=f"Table '{table}' ready (EPSG:{reference_system})",
            details={"schema": config.subset_schema, "table": table, "reference_system": reference_system}
        ),
        "indexes": CheckResult(
            status="fail" if missing else "pass",
            latency_ms=latency_ms,
            message=("Missing " + ", ".join(missing)) if missing else "Spatial and temporal indexes present",
            details={"geometry_index": geometry_methods, "time_index": time_methods}
        )
    }


def get_public_health() -> Dict[str, Any]:
    """Status and timestamp only."""
    db_result = check_database_connectivity()
    status = HealthStatus.HEALTHY if db_result.status == "pass" else HealthStatus.UNHEALTHY

    logger.info("Public health check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'check_type': 'public'
        }
    })

    return {
        "status": status.value,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


def get_detailed_health() -> Dict[str, Any]:
    """Full metrics: database latency, point table and index readiness."""
    start_time = time.perf_counter()
    request_id = str(uuid.uuid4())[:8]

    checks: Dict[str, Any] = {}
    critical_failures = []
    non_critical_failures = []

    db_result = check_database_connectivity()
    checks["database"] = db_result.to_dict()
    if db_result.status == "fail":
        critical_failures.append("database")
    else:
        table_results = check_point_table()
        for name, result in table_results.items():
            checks[name] = result.to_dict()
            if result.status == "fail":
                (critical_failures if name == "point_table" else non_critical_failures).append(name)

    if critical_failures:
        status = HealthStatus.UNHEALTHY
    elif non_critical_failures:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    total_duration = _elapsed_ms(start_time)

    logger.info("Detailed health check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'check_type': 'detailed',
            'request_id': request_id,
            'critical_failures': critical_failures,
            'non_critical_failures': non_critical_failures
        }
    })

    return {
        "status": status.value,
        **get_app_identity(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "checks": checks,
        "total_duration_ms": round(total_duration, 2)
    }
