# ============================================================================
# MODULE CONTEXT - POINT SUBSET MODELS
# ============================================================================
# STATUS: Standalone Models - Query inputs and reconstructed point collections
# PURPOSE: Bounding box / time window inputs, point records and collections
# EXPORTS: BoundingBox, TimeWindow, PointRecord, GeometryDiagnostic, PointCollection,
#          normalize_reference_system, srid_of
# PYDANTIC_MODELS: BoundingBox, TimeWindow
# DEPENDENCIES: pydantic, dataclasses, typing, datetime, math
# PATTERNS: Pydantic for caller inputs, frozen dataclasses for query results
# ============================================================================

"""
Point Subset Models

Caller inputs (bounding box, time window) are Pydantic models so HTTP and
library callers get the same type coercion. Extent invariants are checked by
ensure_valid() so the query builder can reject malformed requests with the
dedicated exceptions rather than a generic ValidationError.

Query results are plain dataclasses: PointRecord is immutable, PointCollection
is an ordered mapping keyed by the source row identifier.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from .exceptions import (
    DuplicateIdentifier,
    InvalidBoundingBox,
    InvalidTimeWindow,
    MixedReferenceSystem,
)


ReferenceSystemLike = Union[str, int]


def normalize_reference_system(value: ReferenceSystemLike) -> str:
    """
    Normalize a reference system identifier to its bare EPSG code.

    Accepts 2229, "2229", "EPSG:2229" and "epsg:2229"; all become "2229".
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid reference system: {value!r}")
    if isinstance(value, int):
        code = str(value)
    else:
        code = str(value).strip()
        if code.upper().startswith("EPSG:"):
            code = code[5:].strip()
    if not code.isdigit() or int(code) <= 0:
        raise ValueError(f"Invalid reference system: {value!r} (expected an EPSG code)")
    return str(int(code))


def srid_of(value: ReferenceSystemLike) -> int:
    """Integer SRID for use in PostGIS functions."""
    return int(normalize_reference_system(value))


def validate_extent(min_x: float, min_y: float, max_x: float, max_y: float) -> None:
    """
    Check bounding box corner invariants.

    Raises:
        InvalidBoundingBox: If a corner is not finite or min > max on either axis
    """
    corners = (min_x, min_y, max_x, max_y)
    if not all(math.isfinite(v) for v in corners):
        raise InvalidBoundingBox(f"Bounding box has non-finite corners: {corners}")
    if min_x > max_x:
        raise InvalidBoundingBox(f"Bounding box min_x ({min_x}) is greater than max_x ({max_x})")
    if min_y > max_y:
        raise InvalidBoundingBox(f"Bounding box min_y ({min_y}) is greater than max_y ({max_y})")


class BoundingBox(BaseModel):
    """
    Axis-aligned bounding box in an explicit reference system.

    The reference system is never inferred; callers must supply it.
    """
    min_x: float = Field(description="Minimum x (easting / longitude)")
    min_y: float = Field(description="Minimum y (northing / latitude)")
    max_x: float = Field(description="Maximum x (easting / longitude)")
    max_y: float = Field(description="Maximum y (northing / latitude)")
    reference_system: str = Field(description="EPSG code of the box coordinates")

    model_config = {"frozen": True}

    @field_validator("reference_system", mode="before")
    @classmethod
    def validate_reference_system(cls, v: Any) -> str:
        return normalize_reference_system(v)

    @classmethod
    def from_sequence(
        cls,
        values: Sequence[float],
        reference_system: ReferenceSystemLike
    ) -> "BoundingBox":
        """Build from [minx, miny, maxx, maxy] (OGC bbox order)."""
        if len(values) != 4:
            raise InvalidBoundingBox(
                f"Bounding box needs 4 values (minx, miny, maxx, maxy), got {len(values)}"
            )
        min_x, min_y, max_x, max_y = values
        return cls(
            min_x=min_x,
            min_y=min_y,
            max_x=max_x,
            max_y=max_y,
            reference_system=reference_system
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def ensure_valid(self) -> None:
        """
        Raises:
            InvalidBoundingBox: If a corner is not finite or min > max on either axis
        """
        validate_extent(*self.as_tuple())

    def overlaps(self, x: float, y: float) -> bool:
        """Closed-interval overlap test, same semantics as the PostGIS && operator for points."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


class TimeWindow(BaseModel):
    """
    Half-open time interval [start, end).

    A zero-width window (start == end) is valid and matches nothing.
    """
    start: datetime = Field(description="Inclusive start instant")
    end: datetime = Field(description="Exclusive end instant")

    model_config = {"frozen": True}

    def ensure_valid(self) -> None:
        """
        Raises:
            InvalidTimeWindow: If start is after end, or only one bound is timezone-aware
        """
        if (self.start.tzinfo is None) != (self.end.tzinfo is None):
            raise InvalidTimeWindow(
                "Time window mixes timezone-aware and naive instants: "
                f"{self.start.isoformat()} / {self.end.isoformat()}"
            )
        if self.start > self.end:
            raise InvalidTimeWindow(
                f"Time window start ({self.start.isoformat()}) is after end ({self.end.isoformat()})"
            )

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True)
class PointRecord:
    """
    A decoded row: identifier, coordinates, (optionally) its timestamp and
    any extra attribute columns the query selected.
    """
    id: Any
    x: float
    y: float
    timestamp: Optional[datetime] = None
    properties: Dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class GeometryDiagnostic:
    """A row dropped during reconstruction because its geometry did not decode."""
    point_id: Any
    wkt: Any
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.point_id,
            "wkt": self.wkt,
            "reason": self.reason
        }


@dataclass
class PointCollection:
    """
    Points keyed by source identifier, all in one reference system.

    Iteration yields PointRecord values in insertion (row) order.
    """
    reference_system: str
    points: Dict[Any, PointRecord] = field(default_factory=dict)
    diagnostics: List[GeometryDiagnostic] = field(default_factory=list)

    def __post_init__(self):
        self.reference_system = normalize_reference_system(self.reference_system)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PointRecord]:
        return iter(self.points.values())

    def __contains__(self, point_id: Any) -> bool:
        return point_id in self.points

    def __getitem__(self, point_id: Any) -> PointRecord:
        return self.points[point_id]

    def get(self, point_id: Any) -> Optional[PointRecord]:
        return self.points.get(point_id)

    def ids(self) -> List[Any]:
        return list(self.points.keys())

    def coordinates(self) -> List[Tuple[float, float]]:
        return [p.coordinates for p in self.points.values()]

    @property
    def is_empty(self) -> bool:
        return not self.points

    def add(self, record: PointRecord) -> None:
        if record.id in self.points:
            raise DuplicateIdentifier(record.id)
        self.points[record.id] = record

    def merge(self, other: "PointCollection") -> "PointCollection":
        """
        Combine two collections into a new one.

        Raises:
            MixedReferenceSystem: If the collections use different reference systems
            DuplicateIdentifier: If an identifier appears in both
        """
        if other.reference_system != self.reference_system:
            raise MixedReferenceSystem(
                f"Cannot merge EPSG:{other.reference_system} points into an "
                f"EPSG:{self.reference_system} collection"
            )
        merged = PointCollection(
            reference_system=self.reference_system,
            points=dict(self.points),
            diagnostics=list(self.diagnostics) + list(other.diagnostics)
        )
        for record in other:
            merged.add(record)
        return merged

    def filter(self, predicate: Callable[[PointRecord], bool]) -> "PointCollection":
        """New collection with the records for which predicate is true."""
        return PointCollection(
            reference_system=self.reference_system,
            points={k: v for k, v in self.points.items() if predicate(v)},
            diagnostics=list(self.diagnostics)
        )

    def time_bounds(self) -> Optional[Tuple[datetime, datetime]]:
        stamps = [p.timestamp for p in self.points.values() if p.timestamp is not None]
        if not stamps:
            return None
        return (min(stamps), max(stamps))


class SubsetFeatureCollection(BaseModel):
    """
    GeoJSON FeatureCollection of a subset, in the display reference system.

    Follows the OGC API - Features response shape (numberReturned, timeStamp)
    with the storage reference system and reconstruction diagnostics added.
    """
    type: Literal["FeatureCollection"] = Field(
        default="FeatureCollection",
        description="GeoJSON type"
    )
    features: List[Dict[str, Any]] = Field(
        description="Array of GeoJSON Feature objects"
    )
    numberReturned: int = Field(
        description="Number of features in this response"
    )
    timeStamp: str = Field(
        description="Timestamp of the response (ISO 8601)"
    )
    crs: str = Field(
        default="http://www.opengis.net/def/crs/OGC/1.3/CRS84",
        description="Reference system of the feature coordinates"
    )
    storageCrs: Optional[str] = Field(
        default=None,
        description="Reference system the points are stored in"
    )
    diagnostics: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Rows dropped because their geometry did not decode"
    )
