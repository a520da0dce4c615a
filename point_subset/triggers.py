# ============================================================================
# MODULE CONTEXT - POINT SUBSET TRIGGERS
# ============================================================================
# STATUS: HTTP Triggers - Point subset endpoints
# PURPOSE: Azure Functions HTTP handlers for subset queries and time extent
# EXPORTS: get_subset_triggers, parse_bbox, parse_datetime_interval, parse_properties
# INTERFACES: Azure Functions HttpRequest/HttpResponse
# DEPENDENCIES: azure.functions, json, service, exceptions, util_logger
# SOURCE: HTTP requests from map clients (Leaflet, QGIS, curl)
# PATTERNS: Trigger Pattern, Factory Pattern (get_subset_triggers)
# ENTRY_POINTS: Function App route registration via get_subset_triggers()
# ============================================================================

"""
Point Subset HTTP Triggers

Endpoints:
- GET /api/subset/{table}/items - Points in bbox and time window (GeoJSON)
- GET /api/subset/{table}/extent - Reference system and time bounds

Query Parameters (items):
- bbox: minx,miny,maxx,maxy (required)
- bbox-crs: EPSG code of bbox (default: the table's reference system)
- properties: Comma-separated extra columns returned as feature properties
- datetime: "start/end" half-open interval, or a single date for that whole day
- as: "points" (default) or "trajectory"
- limit: Max points (1..SUBSET_MAX_FEATURES)

Error mapping:
- 400: InvalidBoundingBox, InvalidTimeWindow, malformed parameters
- 409: DuplicateIdentifier, AmbiguousReferenceSystem, UnknownReferenceSystem
- 502: QueryFailed
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import azure.functions as func

from util_logger import ComponentType, LoggerFactory, log_exceptions

from .config import get_subset_config
from .exceptions import (
    AmbiguousReferenceSystem,
    DuplicateIdentifier,
    InputValidationError,
    InvalidBoundingBox,
    InvalidTimeWindow,
    QueryFailed,
    UnknownReferenceSystem,
)
from .models import BoundingBox, TimeWindow, validate_extent
from .service import PointSubsetService

logger = LoggerFactory.create_logger(ComponentType.TRIGGER, "SubsetTriggers")


# ============================================================================
# PARAMETER PARSING
# ============================================================================

def parse_bbox(value: Optional[str]) -> List[float]:
    """
    Parse "minx,miny,maxx,maxy".

    Raises:
        InvalidBoundingBox: Missing, wrong arity, or non-numeric values
    """
    if not value:
        raise InvalidBoundingBox("bbox parameter is required (minx,miny,maxx,maxy)")
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 4:
        raise InvalidBoundingBox(f"bbox needs 4 comma-separated values, got {len(parts)}")
    try:
        return [float(p) for p in parts]
    except ValueError as e:
        raise InvalidBoundingBox(f"bbox values must be numbers: {value!r}") from e


def parse_properties(value: Optional[str]) -> List[str]:
    """
    Parse the properties parameter ("acres,cause") into column names.

    Names are quoted as SQL identifiers by the query builder, so a column
    that does not exist surfaces as a query failure.
    """
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


def _parse_instant(value: str) -> datetime:
    text = value.strip()
    # Trailing Z is UTC
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidTimeWindow(f"Invalid ISO 8601 instant: {value!r}") from e


def parse_datetime_interval(value: Optional[str]) -> TimeWindow:
    """
    Parse the datetime parameter into a half-open TimeWindow.

    "1990-01-01/2000-01-01" -> [1990-01-01, 2000-01-01)
    "1995-06-01"            -> [1995-06-01, 1995-06-02)

    Raises:
        InvalidTimeWindow: Missing value, open bounds, or unparseable instants
    """
    if not value:
        raise InvalidTimeWindow("datetime parameter is required (start/end)")

    if "/" in value:
        start_str, _, end_str = value.partition("/")
        if start_str in ("", "..") or end_str in ("", ".."):
            raise InvalidTimeWindow("Open-ended intervals are not supported; give both start and end")
        window = TimeWindow(start=_parse_instant(start_str), end=_parse_instant(end_str))
    else:
        start = _parse_instant(value)
        window = TimeWindow(start=start, end=start + timedelta(days=1))

    window.ensure_valid()
    return window


# ============================================================================
# TRIGGER REGISTRY FUNCTION
# ============================================================================

def get_subset_triggers() -> List[Dict[str, Any]]:
    """
    Trigger configurations for function_app.py.

    Returns:
        List of dicts with keys route, methods, handler
    """
    return [
        {
            'route': 'subset/{table}/items',
            'methods': ['GET'],
            'handler': SubsetItemsTrigger().handle
        },
        {
            'route': 'subset/{table}/extent',
            'methods': ['GET'],
            'handler': SubsetExtentTrigger().handle
        }
    ]


# ============================================================================
# BASE TRIGGER CLASS
# ============================================================================

class BaseSubsetTrigger:
    """
    Common functionality for subset triggers:
    - Lazy service creation (no database contact at import time)
    - JSON / error responses
    - Exception to HTTP status mapping
    """

    ERROR_STATUS: Tuple[Tuple[type, int, str], ...] = (
        (InputValidationError, 400, "BadRequest"),
        (DuplicateIdentifier, 409, "Conflict"),
        (AmbiguousReferenceSystem, 409, "Conflict"),
        (UnknownReferenceSystem, 409, "Conflict"),
        (QueryFailed, 502, "BadGateway"),
    )

    def __init__(self, service: Optional[PointSubsetService] = None):
        self._service = service

    @property
    def service(self) -> PointSubsetService:
        if self._service is None:
            self._service = PointSubsetService(get_subset_config())
        return self._service

    def _json_response(self, data: Any, status_code: int = 200,
                       content_type: str = "application/json") -> func.HttpResponse:
        if hasattr(data, 'model_dump'):
            data = data.model_dump(mode='json', exclude_none=True)

        return func.HttpResponse(
            body=json.dumps(data, indent=2, default=str),
            status_code=status_code,
            mimetype=content_type
        )

    def _error_response(self, message: str, status_code: int = 400,
                        error_type: str = "BadRequest") -> func.HttpResponse:
        error_body = {
            "code": error_type,
            "description": message
        }
        return func.HttpResponse(
            body=json.dumps(error_body, indent=2),
            status_code=status_code,
            mimetype="application/json"
        )

    def _map_error(self, error: Exception) -> func.HttpResponse:
        for error_class, status_code, error_type in self.ERROR_STATUS:
            if isinstance(error, error_class):
                if status_code >= 500:
                    logger.error(f"{type(error).__name__}: {error}")
                else:
                    logger.warning(f"{type(error).__name__}: {error}")
                return self._error_response(str(error), status_code, error_type)

        logger.error(f"Unexpected error: {type(error).__name__}: {error}", exc_info=error)
        return self._error_response(
            message=f"Internal server error: {error}",
            status_code=500,
            error_type="InternalServerError"
        )

    def _route_table(self, req: func.HttpRequest) -> Optional[str]:
        return req.route_params.get('table') or None


# ============================================================================
# ENDPOINT TRIGGERS
# ============================================================================

class SubsetItemsTrigger(BaseSubsetTrigger):
    """
    Subset query trigger.

    Endpoint: GET /api/subset/{table}/items
    """

    @log_exceptions(ComponentType.TRIGGER, "SubsetItemsTrigger")
    def handle(self, req: func.HttpRequest) -> func.HttpResponse:
        table = self._route_table(req)
        if not table:
            return self._error_response("Table name is required", 400)

        try:
            as_param = (req.params.get('as') or 'points').lower()
            if as_param not in ('points', 'trajectory'):
                return self._error_response(
                    f"Invalid 'as' value '{as_param}' (expected points or trajectory)", 400
                )

            limit = self._parse_limit(req.params.get('limit'))
            if isinstance(limit, func.HttpResponse):
                return limit

            bbox_values = parse_bbox(req.params.get('bbox'))
            validate_extent(*bbox_values)
            window = parse_datetime_interval(req.params.get('datetime'))
            bbox_crs = req.params.get('bbox-crs')
            extra_columns = parse_properties(req.params.get('properties'))

            bbox = bbox_values
            if bbox_crs is not None:
                try:
                    bbox = BoundingBox.from_sequence(bbox_values, bbox_crs)
                except ValueError as e:
                    return self._error_response(f"Invalid bbox-crs: {e}", 400)

            result = self.service.subset_feature_collection(
                bbox,
                window,
                table=table,
                as_trajectory=(as_param == 'trajectory'),
                limit=limit,
                extra_columns=extra_columns
            )
        except Exception as e:
            return self._map_error(e)

        logger.info(f"Subset of '{table}' returned {result.numberReturned} features")
        return self._json_response(result)

    def _parse_limit(self, value: Optional[str]):
        max_features = self.service.config.max_features
        if value is None:
            return max_features
        try:
            limit = int(value)
        except ValueError:
            return self._error_response(f"limit must be an integer, got {value!r}", 400)
        if not 1 <= limit <= max_features:
            return self._error_response(f"limit must be between 1 and {max_features}", 400)
        return limit


class SubsetExtentTrigger(BaseSubsetTrigger):
    """
    Time extent trigger.

    Endpoint: GET /api/subset/{table}/extent
    """

    @log_exceptions(ComponentType.TRIGGER, "SubsetExtentTrigger")
    def handle(self, req: func.HttpRequest) -> func.HttpResponse:
        table = self._route_table(req)
        if not table:
            return self._error_response("Table name is required", 400)

        try:
            extent = self.service.get_extent(table)
        except Exception as e:
            return self._map_error(e)

        logger.info(f"Extent requested for '{table}'")
        return self._json_response(extent)
