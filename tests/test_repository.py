"""
Tests for SubsetRepository and the PostgreSQL base repository against
scripted fake connections.
"""

from datetime import datetime

import psycopg
import pytest
from psycopg import errors as pg_errors

from infrastructure import postgresql
from infrastructure.postgresql import PostgreSQLRepository
from point_subset.exceptions import (
    AmbiguousReferenceSystem,
    QueryCancelled,
    QueryFailed,
    UnknownReferenceSystem,
)
from point_subset.query_builder import build_query
from point_subset.repository import SubsetRepository, TimeBounds

from .conftest import FakeConnection


@pytest.fixture
def repository(subset_config):
    return SubsetRepository(subset_config, connection_string="postgresql://test@localhost/test")


class TestLookupReferenceSystem:

    def test_single_code(self, repository):
        conn = FakeConnection([[{"auth_name": "EPSG", "auth_srid": 2229}]])
        assert repository.lookup_reference_system(conn, "fires") == "2229"

    def test_several_codes(self, repository):
        conn = FakeConnection([[
            {"auth_name": "EPSG", "auth_srid": 2229},
            {"auth_name": "EPSG", "auth_srid": 4326},
        ]])
        with pytest.raises(AmbiguousReferenceSystem) as exc_info:
            repository.lookup_reference_system(conn, "fires")
        assert exc_info.value.codes == ["2229", "4326"]

    def test_no_code(self, repository):
        conn = FakeConnection([[]])
        with pytest.raises(UnknownReferenceSystem):
            repository.lookup_reference_system(conn, "fires")

    def test_database_error(self, repository):
        conn = FakeConnection([pg_errors.UndefinedTable("relation does not exist")])
        with pytest.raises(QueryFailed):
            repository.lookup_reference_system(conn, "missing")


class TestFetchTimeBounds:

    def test_bounds(self, repository):
        conn = FakeConnection([{"time_min": datetime(1990, 2, 1), "time_max": datetime(2009, 9, 1)}])
        bounds = repository.fetch_time_bounds(conn, "fires")
        assert bounds == TimeBounds(datetime(1990, 2, 1), datetime(2009, 9, 1))
        assert bounds.to_dict()["time_min"] == "1990-02-01T00:00:00"

    def test_empty_table(self, repository):
        conn = FakeConnection([{"time_min": None, "time_max": None}])
        bounds = repository.fetch_time_bounds(conn, "fires")
        assert bounds.is_empty
        assert bounds.to_dict() == {"time_min": None, "time_max": None}


class TestExecuteSubset:

    def test_rows_and_params(self, repository, fires_bbox, nineties):
        rows = [{"point_id": 1, "geom_wkt": "POINT(6410000 1960000)", "observed_at": datetime(1992, 1, 1)}]
        conn = FakeConnection([rows])
        spec = build_query("fires", "wkb_geometry", "time", fires_bbox, nineties)

        assert repository.execute_subset(conn, spec) == rows
        assert conn.executed[0] == (spec.statement, spec.params)

    def test_cancelled(self, repository, fires_bbox, nineties):
        conn = FakeConnection([pg_errors.QueryCanceled("canceling statement due to user request")])
        spec = build_query("fires", "wkb_geometry", "time", fires_bbox, nineties)
        with pytest.raises(QueryCancelled):
            repository.execute_subset(conn, spec)

    def test_failed(self, repository, fires_bbox, nineties):
        conn = FakeConnection([psycopg.OperationalError("server closed the connection")])
        spec = build_query("fires", "wkb_geometry", "time", fires_bbox, nineties)
        with pytest.raises(QueryFailed) as exc_info:
            repository.execute_subset(conn, spec)
        assert not isinstance(exc_info.value, QueryCancelled)
        assert isinstance(exc_info.value.__cause__, psycopg.OperationalError)

    def test_cancel(self, repository):
        conn = FakeConnection()
        repository.cancel(conn)
        assert conn.cancel_calls == 1


class TestPostgreSQLRepository:

    def test_connect_sets_timeout_and_closes(self, monkeypatch):
        conn = FakeConnection()
        calls = {}

        def fake_connect(conninfo, **kwargs):
            calls["conninfo"] = conninfo
            calls.update(kwargs)
            return conn

        monkeypatch.setattr(postgresql.psycopg, "connect", fake_connect)
        repo = PostgreSQLRepository("postgresql://test@localhost/test", statement_timeout_seconds=5)

        with repo.connect() as c:
            assert c is conn
            assert not conn.closed

        assert conn.closed
        assert calls["autocommit"] is True
        assert len(conn.executed) == 1

    def test_connect_closes_on_error(self, monkeypatch):
        conn = FakeConnection()
        monkeypatch.setattr(postgresql.psycopg, "connect", lambda *a, **k: conn)
        repo = PostgreSQLRepository("postgresql://test@localhost/test")

        with pytest.raises(RuntimeError):
            with repo.connect():
                raise RuntimeError("boom")
        assert conn.closed
        assert conn.executed == []

    def test_table_exists(self):
        repo = PostgreSQLRepository("postgresql://test@localhost/test", schema_name="public")
        conn = FakeConnection([{"exists": True}])
        assert repo.table_exists(conn, "fires")
        assert conn.executed[0][1] == ("public", "fires")
