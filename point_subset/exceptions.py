# ============================================================================
# MODULE CONTEXT - POINT SUBSET EXCEPTIONS
# ============================================================================
# STATUS: Standalone Module - Error taxonomy for point subset queries
# PURPOSE: Typed exceptions raised by codec, query builder, reconstructor, repository
# EXPORTS: PointSubsetError and subclasses
# DEPENDENCIES: none
# ============================================================================

"""
Point Subset Exceptions

Input validation errors (InvalidBoundingBox, InvalidTimeWindow) are raised
before any database call. MalformedGeometry is raised by the codec and
collected per row by the reconstructor. Everything else is fatal for the
operation that raised it.
"""

from typing import Any, Iterable, List


class PointSubsetError(Exception):
    """Base exception for point subset errors"""
    pass


class InputValidationError(PointSubsetError):
    """Caller input rejected before query construction"""
    pass


class InvalidBoundingBox(InputValidationError):
    """Bounding box with min > max on an axis or non-finite corners"""
    pass


class InvalidTimeWindow(InputValidationError):
    """Time window with start after end or mixed timezone awareness"""
    pass


class MalformedGeometry(PointSubsetError):
    """Text is not a recognizable single 2D point"""

    def __init__(self, message: str, wkt: Any = None):
        super().__init__(message)
        self.wkt = wkt


class DuplicateIdentifier(PointSubsetError):
    """The same row identifier appeared more than once in a row set"""

    def __init__(self, point_id: Any):
        super().__init__(f"Duplicate point identifier in row set: {point_id!r}")
        self.point_id = point_id


class AmbiguousReferenceSystem(PointSubsetError):
    """More than one authority code found for a single table"""

    def __init__(self, table: str, codes: Iterable[Any]):
        self.table = table
        self.codes: List[str] = sorted(str(c) for c in codes)
        super().__init__(
            f"Table '{table}' stores geometries in several reference systems: "
            f"{', '.join(self.codes)}"
        )


class UnknownReferenceSystem(PointSubsetError):
    """No authority code could be resolved for a table's geometries"""
    pass


class MixedReferenceSystem(PointSubsetError):
    """Attempt to combine collections expressed in different reference systems"""
    pass


class QueryFailed(PointSubsetError):
    """The database rejected or failed to execute a query"""
    pass


class QueryCancelled(QueryFailed):
    """The statement was cancelled because a newer request superseded it"""
    pass


class SessionStateError(PointSubsetError):
    """Operation not allowed in the session's current state"""
    pass
