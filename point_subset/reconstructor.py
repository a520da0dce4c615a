# ============================================================================
# MODULE CONTEXT - RESULT RECONSTRUCTOR
# ============================================================================
# STATUS: Standalone Module - Row set to point collection
# PURPOSE: Decode WKT rows into an identifier-keyed PointCollection
# EXPORTS: reconstruct
# DEPENDENCIES: geometry, models, util_logger
# VALIDATION: Duplicate identifiers are fatal, malformed geometries are collected
# ============================================================================

"""
Result Reconstructor

Turns subset query rows into a PointCollection:
- Every row is decoded independently; a malformed geometry drops that row and
  is recorded as a GeometryDiagnostic, the remaining rows still reconstruct
- The row identifier is the collection key; seeing it twice raises
  DuplicateIdentifier
- The collection's reference system is the one supplied by the caller
- Extra selected columns are kept on each record as properties
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from util_logger import ComponentType, LoggerFactory

from .exceptions import DuplicateIdentifier, MalformedGeometry
from .geometry import decode_point
from .models import GeometryDiagnostic, PointCollection, PointRecord, ReferenceSystemLike
from .query_builder import GEOMETRY_ALIAS, ID_ALIAS, TIME_ALIAS

logger = LoggerFactory.create_logger(ComponentType.CODEC, "Reconstructor")


_ALIASES = (ID_ALIAS, GEOMETRY_ALIAS, TIME_ALIAS)


def _unpack_row(row: Any) -> Tuple[Any, Any, Optional[datetime], Dict[str, Any]]:
    """
    (id, wkt, timestamp, properties) from a dict_row mapping or a positional tuple.

    Mapping keys other than the query aliases are the extra columns. Positional
    rows carry no column names, so they never have properties.
    """
    if isinstance(row, Mapping):
        properties = {k: v for k, v in row.items() if k not in _ALIASES}
        return row[ID_ALIAS], row[GEOMETRY_ALIAS], row.get(TIME_ALIAS), properties
    if len(row) < 2:
        raise ValueError(f"Row needs at least (id, wkt), got {row!r}")
    timestamp = row[2] if len(row) > 2 else None
    return row[0], row[1], timestamp, {}


def reconstruct(rows: Iterable[Any], reference_system: ReferenceSystemLike) -> PointCollection:
    """
    Reconstruct a PointCollection from query rows.

    Args:
        rows: Mappings with point_id/geom_wkt[/observed_at] keys (any other
            key becomes a record property), or sequences (id, wkt[, timestamp])
        reference_system: Reference system of every geometry in rows

    Returns:
        PointCollection (empty when rows is empty) with diagnostics for
        rows whose geometry could not be decoded

    Raises:
        DuplicateIdentifier: The same identifier appears twice
    """
    collection = PointCollection(reference_system=reference_system)
    seen = set()

    for row in rows:
        point_id, wkt, timestamp, properties = _unpack_row(row)

        # Malformed rows still claim their identifier
        if point_id in seen:
            raise DuplicateIdentifier(point_id)
        seen.add(point_id)

        try:
            x, y = decode_point(wkt)
        except MalformedGeometry as e:
            logger.warning(f"Dropping row {point_id!r}: {e}")
            collection.diagnostics.append(
                GeometryDiagnostic(point_id=point_id, wkt=wkt, reason=str(e))
            )
            continue

        collection.add(PointRecord(id=point_id, x=x, y=y, timestamp=timestamp, properties=properties))

    logger.debug(
        f"Reconstructed {len(collection)} points (EPSG:{collection.reference_system}), "
        f"{len(collection.diagnostics)} dropped"
    )
    return collection
