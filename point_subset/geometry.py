# ============================================================================
# MODULE CONTEXT - GEOMETRY CODEC
# ============================================================================
# STATUS: Standalone Module - WKT point encoding/decoding
# PURPOSE: Convert coordinate pairs to and from well-known text points
# EXPORTS: encode_point, decode_point
# DEPENDENCIES: shapely
# PATTERNS: Pure functions, no state
# ============================================================================

"""
Geometry Codec - WKT Points

encode_point() writes each coordinate with repr(), the shortest decimal form
that reads back to the identical double, so encode/decode round-trips exactly.

decode_point() parses with shapely (GEOS WKT reader) and only accepts a single
non-empty 2D point. PostGIS EWKT ("SRID=2229;POINT(...)") is accepted; the
SRID prefix is ignored because the collection carries the reference system.
"""

import math
from typing import Any, Tuple

import shapely.wkt
from shapely.errors import ShapelyError
from shapely.geometry import Point

from .exceptions import MalformedGeometry


def _format_coordinate(value: float) -> str:
    value = float(value)
    if not math.isfinite(value):
        raise MalformedGeometry(f"Coordinate is not finite: {value!r}")
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def encode_point(x: float, y: float) -> str:
    """
    Encode a coordinate pair as WKT.

    Example:
        >>> encode_point(6400000, 1950000.25)
        'POINT(6400000 1950000.25)'
    """
    return f"POINT({_format_coordinate(x)} {_format_coordinate(y)})"


def decode_point(wkt: Any) -> Tuple[float, float]:
    """
    Decode a single-point WKT string into (x, y).

    Raises:
        MalformedGeometry: empty/None input, unparseable text, non-point
            geometry, POINT EMPTY, or a point with Z/M ordinates
    """
    if wkt is None:
        raise MalformedGeometry("Geometry text is null", wkt)
    if isinstance(wkt, bytes):
        wkt = wkt.decode("utf-8", errors="replace")
    if not isinstance(wkt, str):
        raise MalformedGeometry(f"Geometry text must be a string, got {type(wkt).__name__}", wkt)

    text = wkt.strip()
    if not text:
        raise MalformedGeometry("Geometry text is empty", wkt)

    if text[:5].upper() == "SRID=":
        _, sep, text = text.partition(";")
        if not sep:
            raise MalformedGeometry(f"Unterminated SRID prefix in {wkt!r}", wkt)

    try:
        geom = shapely.wkt.loads(text)
    except (ShapelyError, ValueError) as e:
        raise MalformedGeometry(f"Unparseable WKT {wkt!r}: {e}", wkt) from e

    if not isinstance(geom, Point):
        raise MalformedGeometry(f"Expected a POINT, got {geom.geom_type}", wkt)
    if geom.is_empty:
        raise MalformedGeometry("Point is empty", wkt)
    if geom.has_z or getattr(geom, "has_m", False):
        raise MalformedGeometry("Point has more than two ordinates", wkt)

    return (geom.x, geom.y)
