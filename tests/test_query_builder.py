"""
Tests for spatial-temporal query construction.
"""

from datetime import datetime

import pytest

from point_subset.exceptions import InvalidBoundingBox, InvalidTimeWindow
from point_subset.models import BoundingBox, TimeWindow
from point_subset.query_builder import (
    GEOMETRY_ALIAS,
    ID_ALIAS,
    TIME_ALIAS,
    build_query,
    build_reference_system_query,
    build_time_bounds_query,
)


def _build(bbox, window, **kwargs):
    return build_query(
        table="fires",
        geometry_column="wkb_geometry",
        time_column="time",
        bbox=bbox,
        time_window=window,
        **kwargs
    )


class TestBuildQuery:

    def test_params_in_placeholder_order(self, fires_bbox, nineties):
        spec = _build(fires_bbox, nineties)
        assert spec.params == (
            6400000.0, 1950000.0, 6500000.0, 2050000.0, 2229,
            datetime(1990, 1, 1), datetime(2000, 1, 1)
        )
        assert spec.reference_system == "2229"
        assert spec.columns == (ID_ALIAS, GEOMETRY_ALIAS, TIME_ALIAS)

    def test_statement_shape(self, fires_bbox, nineties):
        text = _build(fires_bbox, nineties, schema="public").statement.as_string()
        assert '"public"."fires"' in text
        assert '"wkb_geometry" && ST_MakeEnvelope(%s, %s, %s, %s, %s)' in text
        assert '"time" >= %s AND "time" < %s' in text
        assert 'ST_AsText("wkb_geometry") AS "geom_wkt"' in text
        assert 'ORDER BY "time", "ogc_fid"' in text
        assert "ST_Transform" not in text

    def test_end_instant_excluded(self, fires_bbox, nineties):
        """A fire at exactly 2000-01-01 is outside [1990-01-01, 2000-01-01)."""
        spec = _build(fires_bbox, nineties)
        assert not spec.matches(6450000, 2000000, datetime(2000, 1, 1))
        assert spec.matches(6450000, 2000000, datetime(1990, 1, 1))
        assert spec.matches(6450000, 2000000, datetime(1999, 12, 31, 23, 59, 59))

    def test_bbox_boundary_included(self, fires_bbox, nineties):
        spec = _build(fires_bbox, nineties)
        assert spec.matches(6400000, 1950000, datetime(1995, 1, 1))
        assert not spec.matches(6399999.9, 1950000, datetime(1995, 1, 1))

    def test_inverted_bbox_rejected(self, nineties):
        bbox = BoundingBox(min_x=10, min_y=0, max_x=5, max_y=10, reference_system="4326")
        with pytest.raises(InvalidBoundingBox):
            _build(bbox, nineties)

    def test_inverted_window_rejected(self, fires_bbox):
        window = TimeWindow(start=datetime(2000, 1, 1), end=datetime(1990, 1, 1))
        with pytest.raises(InvalidTimeWindow):
            _build(fires_bbox, window)

    def test_zero_width_window(self, fires_bbox):
        instant = datetime(1995, 6, 1)
        spec = _build(fires_bbox, TimeWindow(start=instant, end=instant))
        assert spec.is_empty_window

    def test_reprojected_envelope(self, nineties):
        bbox = BoundingBox(min_x=-118.7, min_y=33.7, max_x=-118.1, max_y=34.3, reference_system="EPSG:4326")
        spec = _build(bbox, nineties, storage_reference_system=2229)

        assert spec.params[4:6] == (4326, 2229)
        assert spec.reference_system == "2229"
        assert "ST_Transform(ST_MakeEnvelope(%s, %s, %s, %s, %s), %s)" in spec.statement.as_string()

    def test_same_storage_system_not_reprojected(self, fires_bbox, nineties):
        spec = _build(fires_bbox, nineties, storage_reference_system="EPSG:2229")
        assert len(spec.params) == 7

    def test_limit(self, fires_bbox, nineties):
        spec = _build(fires_bbox, nineties, limit=50)
        assert spec.params[-1] == 50
        assert spec.statement.as_string().rstrip().endswith("LIMIT %s")

    def test_non_positive_limit(self, fires_bbox, nineties):
        with pytest.raises(ValueError):
            _build(fires_bbox, nineties, limit=0)

    def test_extra_columns(self, fires_bbox, nineties):
        spec = _build(fires_bbox, nineties, extra_columns=["acres", "time"])
        assert spec.columns == (ID_ALIAS, GEOMETRY_ALIAS, TIME_ALIAS, "acres")

    def test_missing_column_names(self, fires_bbox, nineties):
        with pytest.raises(ValueError):
            build_query("fires", "", "time", fires_bbox, nineties)


class TestMetadataQueries:

    def test_time_bounds_query(self):
        text = build_time_bounds_query("fires", "time", schema="public").as_string()
        assert 'min("time") AS time_min' in text
        assert 'max("time") AS time_max' in text
        assert '"public"."fires"' in text

    def test_reference_system_query(self):
        text = build_reference_system_query("fires", "wkb_geometry").as_string()
        assert 'ST_SRID("wkb_geometry")' in text
        assert "spatial_ref_sys" in text


class TestScenarios:

    def test_end_of_decade_excluded(self):
        bbox = BoundingBox(min_x=0, min_y=0, max_x=10, max_y=10, reference_system="2229")
        window = TimeWindow(start=datetime(1990, 1, 1), end=datetime(2000, 1, 1))
        spec = _build(bbox, window)
        assert not spec.matches(5, 5, datetime(2000, 1, 1, 0, 0, 0))

    def test_inverted_x_fails_before_database(self, nineties):
        bbox = BoundingBox(min_x=10, min_y=0, max_x=0, max_y=10, reference_system="2229")
        with pytest.raises(InvalidBoundingBox):
            _build(bbox, nineties)
