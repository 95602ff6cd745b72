"""Tests for the chainable query builder."""

import pandas as pd
import pytest

from tablemirror.query import FilterValidationError, QueryBuilder
from tablemirror.storage import Scope


@pytest.fixture
def query(loaded_store, project_schema):
    """Start a fresh query over the sample project records."""

    def _query(schema=project_schema):
        return QueryBuilder(loaded_store, Scope.records("tbl_1"), schema=schema)

    return _query


def ids(results):
    return [r["id"] for r in results]


class TestSorting:
    def test_sort_text_ascending(self, query):
        assert ids(query().sort("title").execute()) == ["r4", "r5", "r3", "r1", "r2"]

    def test_sort_dates_by_accessor(self, query):
        # r5 has no due date and sorts first
        assert ids(query().sort("due_date", "asc").execute()) == ["r5", "r3", "r1", "r2", "r4"]

    def test_sort_descending(self, query):
        assert ids(query().sort("due_date", "desc").execute()) == ["r4", "r2", "r1", "r3", "r5"]

    def test_sort_by_date_side(self, query):
        results = query().filter({"field": "due_date", "comparison": "is_not_empty"})
        # r2 only has an end date, so its start side is NULL
        assert ids(results.sort("due_date.from_date").execute()) == ["r2", "r3", "r1", "r4"]

    def test_unknown_direction_sorts_ascending(self, query):
        assert ids(query().sort("title", "sideways").execute()) == ["r4", "r5", "r3", "r1", "r2"]

    def test_invalid_sort_field(self, query):
        with pytest.raises(FilterValidationError, match="Invalid sort field"):
            query().sort("'; --").execute()

    def test_unsorted_returns_everything(self, query):
        assert sorted(ids(query().execute())) == ["r1", "r2", "r3", "r4", "r5"]


class TestPaging:
    def test_limit_and_offset(self, query):
        assert ids(query().sort("title").limit(2).offset(1).execute()) == ["r5", "r3"]

    def test_offset_without_limit(self, query):
        assert ids(query().sort("title").offset(3).execute()) == ["r1", "r2"]

    def test_zero_limit(self, query):
        assert query().limit(0).execute() == []

    def test_negative_values_rejected(self, query):
        with pytest.raises(ValueError, match="limit"):
            query().limit(-1)
        with pytest.raises(ValueError, match="offset"):
            query().offset(-5)

    def test_first(self, query):
        assert query().sort("title", "desc").first()["id"] == "r2"
        assert query().where(status="Nope").first() is None

    def test_first_keeps_configured_limit(self, query):
        builder = query().sort("title").limit(3)
        builder.first()
        assert len(builder.execute()) == 3


class TestProjection:
    def test_id_always_kept(self, query):
        result = query().where(status="Backlog").project(["title"]).execute()
        assert result == [{"id": "r2", "title": "Write docs"}]

    def test_sub_field_keeps_whole_field(self, query):
        result = query().where(status="Backlog").project(["due_date.to_date"]).first()
        assert set(result) == {"id", "due_date"}

    def test_missing_fields_are_skipped(self, query):
        result = query().where(status="Done").project(["owner", "title"]).first()
        assert result == {"id": "r5", "title": "Archive"}

    def test_empty_projection_returns_full_payload(self, query):
        result = query().where(status="Done").project([]).first()
        assert "files" in result


class TestWhere:
    """Test keyword conditions."""

    def test_equality(self, query):
        assert sorted(ids(query().where(status="Active").execute())) == ["r1", "r3"]

    def test_short_operator(self, query):
        assert sorted(ids(query().where(priority={"gte": 3}).execute())) == ["r1", "r3"]

    def test_list_means_any_of(self, query):
        assert sorted(ids(query().where(status=["Done", "Backlog"]).execute())) == ["r2", "r5"]

    def test_between(self, query):
        assert sorted(ids(query().where(priority={"between": [2, 3]}).execute())) == ["r2", "r3"]

    def test_long_comparison_name(self, query):
        assert ids(query().where(tags={"has_any_of": ["docs"]}).execute()) == ["r2"]

    def test_conditions_and_filters_combine_with_and(self, query):
        builder = query().filter({"field": "status", "comparison": "is", "value": "Active"})
        assert ids(builder.where(priority={"gt": 4}).execute()) == ["r1"]

    def test_without_schema_unknown_fields_go_unnoticed(self, query):
        builder = query(schema=None).where(nope="x")
        assert builder.execute() == []
        assert builder.warnings == ()

    def test_without_schema_equality_still_unwraps_values(self, query):
        assert sorted(ids(query(schema=None).where(status="Active").execute())) == ["r1", "r3"]


class TestCountAndDiagnostics:
    def test_count_ignores_paging(self, query):
        builder = query().where(tags={"has_any_of": ["web"]}).sort("title").limit(1)
        assert builder.count() == 3
        assert len(builder.execute()) == 1

    def test_warnings_for_unknown_fields(self, query):
        builder = query().where(nope="x")
        assert builder.execute() == []
        assert any("Unknown field 'nope'" in w for w in builder.warnings)

    def test_no_warnings_for_known_fields(self, query):
        builder = query().where(status="Active")
        builder.execute()
        assert builder.warnings == ()

    def test_malformed_filter_rejected_early(self, query):
        with pytest.raises(FilterValidationError):
            query().filter({"field": "status"})

    def test_repr(self, query):
        text = repr(query().sort("title").limit(2))
        assert "scope=records:tbl_1" in text
        assert "limit=2" in text


class TestIntegrations:
    def test_iterates_results(self, query):
        assert len(list(query())) == 5

    def test_to_frame(self, query):
        frame = query().sort("title").project(["title", "status"]).to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ["id", "title", "status"]
        assert frame["id"].tolist() == ["r4", "r5", "r3", "r1", "r2"]

    def test_to_frame_empty(self, query):
        frame = query().where(status="Nope").to_frame()
        assert frame.empty

    def test_expired_rows_are_not_returned(self, query, clock):
        clock.advance(3600)
        assert query().execute() == []
