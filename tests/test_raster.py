"""
Tests for raster sampling along trajectory steps.
"""

from decimal import Decimal

import psycopg
import pytest

from point_subset.exceptions import QueryFailed
from point_subset.raster import PostGISRasterSampler

from .conftest import FakeConnection


class TestPostGISRasterSampler:

    def test_params_without_filter(self):
        query, params = PostGISRasterSampler().build_query("steps", "step_id", "path", "dem")
        assert params == (1,)
        assert "ANY" not in query.as_string()

    def test_params_with_step_filter(self):
        query, params = PostGISRasterSampler(schema="terrain", band=2).build_query(
            "steps", "step_id", "path", "dem", step_ids=(4, 5)
        )
        text = query.as_string()
        assert params == (2, [4, 5])
        assert '"terrain"."dem"' in text
        assert 's."step_id" = ANY(%s)' in text

    def test_sample_path_mean(self):
        conn = FakeConnection([[
            {"step_id": 1, "mean_value": Decimal("412.5")},
            {"step_id": 2, "mean_value": None},
        ]])

        result = PostGISRasterSampler().sample_path_mean(conn, "steps", "step_id", "path", "dem")

        assert result == {1: 412.5, 2: None}

    def test_database_error(self):
        conn = FakeConnection([psycopg.errors.UndefinedFunction("function st_value does not exist")])
        with pytest.raises(QueryFailed):
            PostGISRasterSampler().sample_path_mean(conn, "steps", "step_id", "path", "dem")
