"""
Tests for the one-shot subset service.
"""

from datetime import datetime

import pytest

from point_subset.exceptions import DuplicateIdentifier, InvalidBoundingBox, InvalidTimeWindow
from point_subset.models import BoundingBox, TimeWindow
from point_subset.service import PointSubsetService

from .conftest import FakeConnection, FakeSubsetRepository

SRID_ROWS = [{"auth_name": "EPSG", "auth_srid": 2229}]


@pytest.fixture
def make_service(subset_config):
    def _make(results):
        repo = FakeSubsetRepository(results, config=subset_config)
        return PointSubsetService(subset_config, repository=repo), repo
    return _make


class TestSubset:

    def test_subset(self, make_service, fires_bbox, nineties):
        rows = [
            {"point_id": 3, "geom_wkt": "POINT(6410000 1960000)", "observed_at": datetime(1994, 5, 5)},
            {"point_id": 4, "geom_wkt": "MULTIPOINT((1 2))", "observed_at": datetime(1995, 5, 5)},
        ]
        service, repo = make_service([SRID_ROWS, rows])

        collection = service.subset(fires_bbox, nineties)

        assert collection.ids() == [3]
        assert collection.reference_system == "2229"
        assert len(collection.diagnostics) == 1
        assert repo.connections[0].closed

    def test_invalid_bbox_never_connects(self, make_service, nineties):
        service, repo = make_service([])
        bbox = BoundingBox(min_x=10, min_y=0, max_x=5, max_y=10, reference_system="2229")
        with pytest.raises(InvalidBoundingBox):
            service.subset(bbox, nineties)
        assert repo.connections == []

    def test_invalid_window_never_connects(self, make_service, fires_bbox):
        service, repo = make_service([])
        with pytest.raises(InvalidTimeWindow):
            service.subset(fires_bbox, TimeWindow(start=datetime(2000, 1, 1), end=datetime(1990, 1, 1)))
        assert repo.connections == []

    def test_zero_width_window(self, make_service, fires_bbox):
        service, repo = make_service([SRID_ROWS])
        instant = datetime(1995, 1, 1)
        collection = service.subset(fires_bbox, TimeWindow(start=instant, end=instant))
        assert collection.is_empty
        assert len(repo.connections[0].executed) == 1

    def test_duplicate_identifier(self, make_service, fires_bbox, nineties):
        rows = [
            {"point_id": 3, "geom_wkt": "POINT(1 2)", "observed_at": datetime(1994, 5, 5)},
            {"point_id": 3, "geom_wkt": "POINT(3 4)", "observed_at": datetime(1995, 5, 5)},
        ]
        service, _ = make_service([SRID_ROWS, rows])
        with pytest.raises(DuplicateIdentifier):
            service.subset(fires_bbox, nineties)

    def test_caller_connection_reused(self, make_service, fires_bbox, nineties):
        service, repo = make_service([])
        conn = FakeConnection([SRID_ROWS, []])
        service.subset(fires_bbox, nineties, conn=conn)
        assert repo.connections == []
        assert not conn.closed

    def test_feature_collection(self, make_service, nineties):
        rows = [{"point_id": 1, "geom_wkt": "POINT(-118.25 34.05)", "observed_at": datetime(1994, 5, 5)}]
        service, _ = make_service([[{"auth_name": "EPSG", "auth_srid": 4326}], rows])
        bbox = BoundingBox(min_x=-119, min_y=33, max_x=-118, max_y=35, reference_system="4326")

        result = service.subset_feature_collection(bbox, nineties)

        assert result.numberReturned == 1
        assert result.features[0]["geometry"]["coordinates"] == pytest.approx([-118.25, 34.05])
        assert result.storageCrs.endswith("/4326")


class TestGetExtent:

    def test_extent(self, make_service):
        service, _ = make_service([SRID_ROWS, {"time_min": datetime(1990, 2, 1), "time_max": datetime(2009, 9, 1)}])
        extent = service.get_extent("fires")
        assert extent == {
            "table": "fires",
            "reference_system": "2229",
            "time_min": "1990-02-01T00:00:00",
            "time_max": "2009-09-01T00:00:00",
        }


class TestExtraColumnsAndDefaultReferenceSystem:

    def test_extra_column_reaches_geojson(self, make_service, nineties):
        rows = [{"point_id": 1, "geom_wkt": "POINT(-118.25 34.05)",
                 "observed_at": datetime(1994, 5, 5), "acres": 310}]
        service, repo = make_service([[{"auth_name": "EPSG", "auth_srid": 4326}], rows])
        bbox = BoundingBox(min_x=-119, min_y=33, max_x=-118, max_y=35, reference_system="4326")

        result = service.subset_feature_collection(bbox, nineties, extra_columns=["acres"])

        assert result.features[0]["properties"]["acres"] == 310
        statement, _ = repo.connections[0].executed[-1]
        assert '"acres"' in statement.as_string()

    def test_bare_bbox_uses_storage_reference_system(self, make_service, nineties):
        service, repo = make_service([SRID_ROWS, []])

        collection = service.subset([6400000, 1950000, 6500000, 2050000], nineties)

        assert collection.reference_system == "2229"
        assert len(repo.connections) == 1
        executed = repo.connections[0].executed
        assert len(executed) == 2
        _, params = executed[-1]
        assert params[4] == 2229
        assert "ST_Transform" not in executed[-1][0].as_string()

    @pytest.mark.parametrize("values", [[10, 0, 5, 10], [0, 0, 1]])
    def test_bare_bbox_validated_before_connecting(self, make_service, nineties, values):
        service, repo = make_service([])
        with pytest.raises(InvalidBoundingBox):
            service.subset(values, nineties)
        assert repo.connections == []
