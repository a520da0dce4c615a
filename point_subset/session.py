# ============================================================================
# MODULE CONTEXT - SUBSET SESSION
# ============================================================================
# STATUS: Interactive Layer - Time-range driven map subsetting
# PURPOSE: Re-query a fixed bbox whenever the time-range control changes
# EXPORTS: SubsetSession, SessionState
# DEPENDENCIES: repository, query_builder, reconstructor, display, util_logger
# PATTERNS: State machine, generation counter for request supersession
# ENTRY_POINTS: with SubsetSession(bbox, display) as session: session.start()
# ============================================================================

"""
Subset Session - Interactive Variant

States:
    IDLE -> QUERYING          start()
    QUERYING -> READY         query + reconstruction succeeded
    QUERYING -> ERROR         query or reconstruction failed
    READY|ERROR -> QUERYING   set_time_window() (time-range control changed)
    any -> CLOSED             close()

The bounding box is fixed for the session's lifetime. One query is
outstanding at a time: a control change while QUERYING cancels the running
statement, and a result belonging to an older generation is discarded
without touching the display.

On READY the display is replaced with the new collection. On ERROR the
display gets an error indicator and keeps the last good collection.

The session owns one database connection from start() until close(); it is
released on close, on __exit__, and when a failure leaves it broken.
"""

import threading
import uuid
from contextlib import ExitStack
from datetime import timedelta
from enum import Enum
from typing import Optional, Sequence

import psycopg

from util_logger import ComponentType, LogContext, LoggerFactory

from .config import PointSubsetConfig, get_subset_config
from .display import MapDisplay
from .exceptions import PointSubsetError, QueryFailed, SessionStateError
from .models import BoundingBox, PointCollection, TimeWindow
from .query_builder import QuerySpec, build_query
from .reconstructor import reconstruct
from .repository import SubsetRepository, TimeBounds

# Postgres timestamps have microsecond resolution; the initial window must
# include the latest instant.
_TIMESTAMP_RESOLUTION = timedelta(microseconds=1)


class SessionState(str, Enum):
    """Subset session states."""
    IDLE = "idle"
    QUERYING = "querying"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class SubsetSession:
    """
    Interactive subset of one point table inside one bounding box.

    Example:
        display = GeoJSONDisplay()
        with SubsetSession(bbox, display, table="fires") as session:
            session.start()
            session.set_time_window(TimeWindow(start=..., end=...))
    """

    def __init__(
        self,
        bbox: BoundingBox,
        display: MapDisplay,
        table: Optional[str] = None,
        repository: Optional[SubsetRepository] = None,
        config: Optional[PointSubsetConfig] = None,
        session_id: Optional[str] = None,
        extra_columns: Optional[Sequence[str]] = None
    ):
        # Fail fast: the bbox never changes after construction
        bbox.ensure_valid()

        self.config = config or (repository.config if repository else get_subset_config())
        self.repository = repository or SubsetRepository(self.config)
        self.table = table or self.config.default_table
        self.bbox = bbox
        self.display = display
        self.extra_columns = list(extra_columns or [])
        self.session_id = session_id or str(uuid.uuid4())[:8]

        self.reference_system: Optional[str] = None
        self.time_bounds: Optional[TimeBounds] = None
        self.time_window: Optional[TimeWindow] = None
        self.collection: Optional[PointCollection] = None
        self.last_error: Optional[Exception] = None

        self._state = SessionState.IDLE
        self._generation = 0
        self._lock = threading.Lock()
        self._exit_stack = ExitStack()
        self._conn: Optional[psycopg.Connection] = None

        self.logger = LoggerFactory.create_logger(
            ComponentType.SESSION,
            "SubsetSession",
            LogContext(session_id=self.session_id, table=self.table)
        )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    def __enter__(self) -> "SubsetSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self, initial_window: Optional[TimeWindow] = None) -> SessionState:
        """
        Open the connection, seed the time-range control and run the first query.

        Args:
            initial_window: Window for the first query. Defaults to the
                table's full time extent.

        Returns:
            State after the first query (READY or ERROR)
        """
        if initial_window is not None:
            initial_window.ensure_valid()

        with self._lock:
            if self._state != SessionState.IDLE:
                raise SessionStateError(f"Session already started (state: {self._state.value})")
            self._generation += 1
            generation = self._generation
            self._state = SessionState.QUERYING

        self.logger.info(f"Starting subset session on '{self.table}'")

        try:
            self._load_table_metadata()
        except (PointSubsetError, psycopg.Error) as e:
            return self._fail(generation, e)

        window = initial_window or self._full_extent_window()
        if window is None:
            # Empty table: nothing to query, an empty collection is still a result
            with self._lock:
                if generation != self._generation:
                    return self._state
                return self._publish(PointCollection(reference_system=self.reference_system))

        self.time_window = window
        return self._run(generation, window)

    def set_time_window(self, window: TimeWindow) -> SessionState:
        """
        Time-range control changed: re-query the fixed bbox for window.

        Supersedes any query still in flight.

        Raises:
            InvalidTimeWindow: Before any state change
            SessionStateError: Session not started or closed
        """
        window.ensure_valid()

        with self._lock:
            if self._state in (SessionState.IDLE, SessionState.CLOSED):
                raise SessionStateError(f"Cannot change time window in state '{self._state.value}'")
            self._generation += 1
            generation = self._generation

            if self._state == SessionState.QUERYING and self._conn is not None:
                self.logger.info(f"Superseding in-flight query with generation {generation}")
                self.repository.cancel(self._conn)

            self._state = SessionState.QUERYING
            self.time_window = window

        return self._run(generation, window)

    def close(self) -> None:
        """Terminal: release the connection. Idempotent."""
        with self._lock:
            if self._state == SessionState.CLOSED:
                return
            if self._state == SessionState.QUERYING and self._conn is not None:
                self.repository.cancel(self._conn)
            self._generation += 1
            self._state = SessionState.CLOSED
        self._release_connection()
        self.logger.info("Subset session closed")

    # ========================================================================
    # QUERY EXECUTION
    # ========================================================================

    def _build(self, window: TimeWindow) -> QuerySpec:
        return build_query(
            table=self.table,
            geometry_column=self.config.geometry_column,
            time_column=self.config.time_column,
            bbox=self.bbox,
            time_window=window,
            id_column=self.config.id_column,
            schema=self.repository.schema_name,
            storage_reference_system=self.reference_system,
            extra_columns=self.extra_columns
        )

    def _load_table_metadata(self) -> None:
        """
        Resolve the reference system and time bounds not yet known.

        Called by start() and again by a later run when start() failed
        before both were loaded.
        """
        if self.reference_system is not None and self.time_bounds is not None:
            return
        conn = self._ensure_connection()
        if self.reference_system is None:
            self.reference_system = self.repository.lookup_reference_system(
                conn, self.table, self.config.geometry_column
            )
        if self.time_bounds is None:
            self.time_bounds = self.repository.fetch_time_bounds(
                conn, self.table, self.config.time_column
            )

    def _full_extent_window(self) -> Optional[TimeWindow]:
        if self.time_bounds is None or self.time_bounds.is_empty:
            return None
        return TimeWindow(
            start=self.time_bounds.time_min,
            end=self.time_bounds.time_max + _TIMESTAMP_RESOLUTION
        )

    def _run(self, generation: int, window: TimeWindow) -> SessionState:
        """Query window outside the lock, then publish if still current."""
        try:
            self._load_table_metadata()
            spec = self._build(window)
            if spec.is_empty_window:
                collection = PointCollection(reference_system=spec.reference_system)
            else:
                rows = self.repository.execute_subset(self._ensure_connection(), spec)
                collection = reconstruct(rows, spec.reference_system)
        except (PointSubsetError, psycopg.Error) as e:
            return self._fail(generation, e)

        with self._lock:
            if generation != self._generation:
                self.logger.debug(f"Discarding result of superseded generation {generation}")
                return self._state
            return self._publish(collection)

    def _publish(self, collection: PointCollection) -> SessionState:
        """Caller holds the lock."""
        self.collection = collection
        self.last_error = None
        self._state = SessionState.READY
        self.display.show(collection)
        self.logger.info(
            f"Session ready with {len(collection)} points "
            f"({len(collection.diagnostics)} rows dropped)"
        )
        return self._state

    def _fail(self, generation: int, error: Exception) -> SessionState:
        if isinstance(error, psycopg.Error):
            wrapped = QueryFailed(f"Database error: {error}")
            wrapped.__cause__ = error
            error = wrapped

        if self._conn is not None and (self._conn.closed or self._conn.broken):
            self._release_connection()

        with self._lock:
            if generation != self._generation:
                self.logger.debug(f"Ignoring failure of superseded generation {generation}: {error}")
                return self._state
            self.last_error = error
            self._state = SessionState.ERROR
            self.display.show_error(str(error))

        self.logger.error(f"Subset query failed: {error}")
        return self._state

    # ========================================================================
    # CONNECTION
    # ========================================================================

    def _ensure_connection(self) -> psycopg.Connection:
        if self._conn is None:
            self._conn = self._exit_stack.enter_context(self.repository.connect())
        return self._conn

    def _release_connection(self) -> None:
        self._conn = None
        self._exit_stack.close()
        self._exit_stack = ExitStack()
