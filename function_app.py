# ============================================================================
# MODULE CONTEXT - AZURE FUNCTIONS ENTRY POINT
# ============================================================================
# STATUS: Core Infrastructure - Function App Entry Point
# PURPOSE: Registers point subset and health HTTP triggers
# EXPORTS: app (FunctionApp instance)
# DEPENDENCIES: azure-functions, point_subset, health
# ============================================================================

"""
Azure Functions Entry Point

Endpoints:
    - GET /api/subset/{table}/items - Points in bbox + time window (GeoJSON)
    - GET /api/subset/{table}/extent - Reference system and time bounds
    - GET /api/health - Public health check
    - GET /api/health/detailed - Detailed health (internal probes)

Deployment:
    - Local: func start
    - Azure: func azure functionapp publish <app-name> --python --build remote
"""

import json
import logging

import azure.functions as func

from health import HealthStatus, get_app_identity, get_detailed_health, get_public_health
from point_subset import get_subset_triggers

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = func.FunctionApp()

# ============================================================================
# Point Subset API - 2 Endpoints
# ============================================================================

subset_triggers = get_subset_triggers()


@app.route(route="subset/{table}/items", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def subset_items(req: func.HttpRequest) -> func.HttpResponse:
    return subset_triggers[0]['handler'](req)


@app.route(route="subset/{table}/extent", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def subset_extent(req: func.HttpRequest) -> func.HttpResponse:
    return subset_triggers[1]['handler'](req)


# ============================================================================
# Health Checks
# ============================================================================

@app.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Public health check - always 200, status in body."""
    return func.HttpResponse(
        json.dumps(get_public_health(), default=str),
        mimetype="application/json",
        status_code=200,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"}
    )


@app.route(route="health/detailed", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_detailed(req: func.HttpRequest) -> func.HttpResponse:
    """Detailed health check - 503 if unhealthy, 200 otherwise."""
    result = get_detailed_health()
    status_code = 503 if result["status"] == HealthStatus.UNHEALTHY.value else 200

    return func.HttpResponse(
        json.dumps(result, default=str, indent=2),
        mimetype="application/json",
        status_code=status_code,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"}
    )


_app_identity = get_app_identity()
logger.info("=" * 60)
logger.info(f"{_app_identity['name']} - {_app_identity['description']}")
logger.info("=" * 60)
logger.info("Available endpoints:")
logger.info("  - GET /api/subset/{table}/items - Points in bbox and time window")
logger.info("  - GET /api/subset/{table}/extent - Reference system and time bounds")
logger.info("  - GET /api/health - Public health check (minimal)")
logger.info("  - GET /api/health/detailed - Detailed health")
logger.info("=" * 60)
