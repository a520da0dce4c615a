"""
Pytest configuration and fixtures for point subset tests.

No live database is needed: repository tests run against FakeConnection,
which records executed statements and replays scripted results in order.

Markers:
    @pytest.mark.session - Interactive session tests
    @pytest.mark.http - HTTP trigger tests
"""

import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from point_subset.config import PointSubsetConfig  # noqa: E402
from point_subset.models import BoundingBox, TimeWindow  # noqa: E402
from point_subset.repository import SubsetRepository  # noqa: E402


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "session: Interactive session tests")
    config.addinivalue_line("markers", "http: HTTP trigger tests")


class FakeCursor:
    """Cursor that pops the connection's next scripted result on execute()."""

    def __init__(self, conn: "FakeConnection"):
        self.conn = conn
        self._rows: List[Any] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=None):
        self.conn.executed.append((query, params))
        result = self.conn.results.pop(0) if self.conn.results else []
        if isinstance(result, BaseException):
            raise result
        self._rows = result if isinstance(result, list) else [result]
        return self

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnection:
    """Stand-in for psycopg.Connection."""

    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        self.executed: List[Any] = []
        self.closed = False
        self.broken = False
        self.cancel_calls = 0

    def cursor(self):
        return FakeCursor(self)

    def execute(self, query, params=None):
        return FakeCursor(self).execute(query, params)

    def cancel_safe(self):
        self.cancel_calls += 1

    def close(self):
        self.closed = True


class FakeSubsetRepository(SubsetRepository):
    """SubsetRepository whose connect() hands out FakeConnections."""

    def __init__(self, results: Optional[List[Any]] = None, config: Optional[PointSubsetConfig] = None):
        super().__init__(config or PointSubsetConfig(), connection_string="postgresql://test@localhost/test")
        self.results = list(results or [])
        self.connections: List[FakeConnection] = []

    @contextmanager
    def connect(self):
        conn = FakeConnection(self.results)
        self.results = []
        self.connections.append(conn)
        try:
            yield conn
        finally:
            conn.close()


@pytest.fixture
def subset_config():
    return PointSubsetConfig(
        subset_schema="public",
        default_table="fires",
        id_column="ogc_fid",
        geometry_column="wkb_geometry",
        time_column="time",
        query_timeout_seconds=30,
        max_features=10000,
        display_crs="EPSG:4326"
    )


@pytest.fixture
def fires_bbox():
    """The bbox used on the fires sample (EPSG:2229, US feet)."""
    return BoundingBox(
        min_x=6400000, min_y=1950000, max_x=6500000, max_y=2050000,
        reference_system="2229"
    )


@pytest.fixture
def nineties():
    return TimeWindow(start=datetime(1990, 1, 1), end=datetime(2000, 1, 1))
