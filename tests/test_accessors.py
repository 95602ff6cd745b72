"""Tests for field value accessors and the accessor registry.

These tests verify:
- Identifier sanitization in field paths
- Registry resolution, fallback and duplicate protection
- Each extraction strategy evaluated by SQLite against real payloads
"""

import json
import sqlite3

import pytest

from tablemirror.accessors import (
    ArrayContainmentAccessor,
    DateMultiformatAccessor,
    PlainTextAccessor,
    SelectOrStatusAccessor,
)
from tablemirror.base import (
    AccessorRegistry,
    FieldAccessor,
    FieldPath,
    get_registry,
    resolve_accessor,
)


@pytest.fixture
def evaluate():
    """Evaluate an SQL expression over a single payload."""
    conn = sqlite3.connect(":memory:")

    def _evaluate(sql, payload):
        row = conn.execute(f"SELECT {sql} FROM (SELECT ? AS payload)", (json.dumps(payload),))
        return row.fetchone()[0]

    yield _evaluate
    conn.close()


class TestFieldPath:
    """Test FieldPath parsing and sanitization."""

    def test_parse_plain(self):
        assert FieldPath.parse("status") == FieldPath("status")

    def test_parse_sub_field(self):
        path = FieldPath.parse("due_date.from_date")
        assert path.field == "due_date"
        assert path.sub == "from_date"
        assert str(path) == "due_date.from_date"

    def test_sanitizes_both_parts(self):
        path = FieldPath.parse("ti-tle'.to_date\"")
        assert path.field == "title"
        assert path.sub == "to_date"

    def test_invalid_when_nothing_left(self):
        assert not FieldPath.parse("'; --").is_valid
        assert not FieldPath.parse(None).is_valid

    def test_json_path_is_quoted(self):
        assert FieldPath("status").json_path("value") == "'$.\"status\".\"value\"'"

    def test_json_path_sanitizes_keys(self):
        assert FieldPath("f").json_path("a'b") == "'$.\"f\".\"ab\"'"


class TestAccessorRegistry:
    """Test registration and resolution."""

    def test_builtin_strategies_registered(self):
        registry = get_registry()
        for strategy in ("plain_text", "select_or_status", "date_multiformat", "array_containment"):
            assert registry.is_registered(strategy)

    @pytest.mark.parametrize(
        "field_type,strategy",
        [
            ("statusfield", "select_or_status"),
            ("singleselectfield", "select_or_status"),
            ("datefield", "date_multiformat"),
            ("daterangefield", "date_multiformat"),
            ("duedatefield", "date_multiformat"),
            ("firstcreatedfield", "date_multiformat"),
            ("lastupdatedfield", "date_multiformat"),
            ("multipleselectfield", "array_containment"),
            ("tagsfield", "array_containment"),
            ("userfield", "array_containment"),
            ("assignedtofield", "array_containment"),
            ("linkedrecordfield", "array_containment"),
            ("subitemsfield", "array_containment"),
            ("filefield", "array_containment"),
            ("imagefield", "array_containment"),
            ("StatusField", "select_or_status"),
        ],
    )
    def test_resolve_field_types(self, field_type, strategy):
        assert get_registry().resolve(field_type).strategy == strategy

    def test_unknown_and_missing_types_fall_back(self):
        registry = get_registry()
        assert registry.resolve("numberfield").strategy == "plain_text"
        assert registry.resolve(None).strategy == "plain_text"
        assert registry.resolve("").strategy == "plain_text"

    def test_resolve_accessor_binds_path(self):
        resolved = resolve_accessor("status", "statusfield")
        assert resolved.strategy == "select_or_status"
        assert "'$.\"status\".\"value\"'" in resolved.sql()

    def test_duplicate_strategy_rejected(self):
        registry = AccessorRegistry()
        registry.register(PlainTextAccessor())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(PlainTextAccessor())

    def test_duplicate_field_type_rejected(self):
        class OtherStatus(FieldAccessor):
            @property
            def strategy(self):
                return "other_status"

            @property
            def field_types(self):
                return ("statusfield",)

            def extract_sql(self, path):
                return "NULL"

        registry = AccessorRegistry()
        registry.register(SelectOrStatusAccessor())
        with pytest.raises(ValueError, match="statusfield"):
            registry.register(OtherStatus())

    def test_get_unknown_strategy(self):
        with pytest.raises(KeyError, match="nope"):
            AccessorRegistry().get("nope")

    def test_list_types(self):
        registry = AccessorRegistry()
        registry.register(PlainTextAccessor())
        registry.register(ArrayContainmentAccessor())
        assert registry.list_types() == ["plain_text", "array_containment"]
        assert "tagsfield" in registry.list_field_types()


class TestPlainTextAccessor:
    def test_reads_scalar(self, evaluate):
        sql = PlainTextAccessor().extract_sql(FieldPath("title"))
        assert evaluate(sql, {"title": "Hello"}) == "Hello"
        assert evaluate(sql, {"other": 1}) is None


class TestSelectOrStatusAccessor:
    """Test both stored shapes of a select value."""

    @pytest.fixture
    def sql(self):
        return SelectOrStatusAccessor().extract_sql(FieldPath("status"))

    def test_wrapped_value(self, evaluate, sql):
        assert evaluate(sql, {"status": {"value": "Active", "updated_on": "x"}}) == "Active"

    def test_plain_scalar(self, evaluate, sql):
        assert evaluate(sql, {"status": "Active"}) == "Active"

    def test_missing_or_null(self, evaluate, sql):
        assert evaluate(sql, {}) is None
        assert evaluate(sql, {"status": None}) is None

    def test_object_without_value(self, evaluate, sql):
        assert evaluate(sql, {"status": {"label": "Active"}}) is None


class TestDateMultiformatAccessor:
    """Test each stored date shape, in priority order."""

    @pytest.fixture
    def accessor(self):
        return DateMultiformatAccessor()

    @pytest.mark.parametrize(
        "stored,expected",
        [
            ({"to_date": {"date": "2024-06-24T00:00:00Z"}}, "2024-06-24"),
            ({"to_date": "2024-06-24"}, "2024-06-24"),
            ("2024-06-24T10:00:00Z", "2024-06-24"),
            ({"date": "2024-06-24T10:00:00Z"}, "2024-06-24"),
        ],
    )
    def test_every_shape_yields_same_day(self, evaluate, accessor, stored, expected):
        sql = accessor.extract_sql(FieldPath("due"))
        assert evaluate(sql, {"due": stored}) == expected

    @pytest.mark.parametrize(
        "stored",
        [None, "", "soon", "24/06/2024", {"to_date": {"date": "tomorrow"}}, 20240624, {"from_date": None}],
    )
    def test_non_dates_yield_no_value(self, evaluate, accessor, stored):
        sql = accessor.extract_sql(FieldPath("due"))
        assert evaluate(sql, {"due": stored}) is None

    def test_missing_field(self, evaluate, accessor):
        assert evaluate(accessor.extract_sql(FieldPath("due")), {}) is None

    def test_range_wrapper_wins_over_date_object(self, evaluate, accessor):
        stored = {"to_date": {"date": "2024-06-30"}, "date": "2024-01-01"}
        assert evaluate(accessor.extract_sql(FieldPath("due")), {"due": stored}) == "2024-06-30"

    def test_invalid_candidate_falls_through(self, evaluate, accessor):
        stored = {"to_date": {"date": "n/a"}, "date": "2024-01-01"}
        assert evaluate(accessor.extract_sql(FieldPath("due")), {"due": stored}) == "2024-01-01"

    def test_side_selection(self, evaluate, accessor):
        stored = {
            "from_date": {"date": "2024-06-01T00:00:00Z"},
            "to_date": {"date": "2024-06-24T00:00:00Z"},
        }
        assert evaluate(accessor.extract_sql(FieldPath.parse("due.from_date")), {"due": stored}) == "2024-06-01"
        assert evaluate(accessor.extract_sql(FieldPath.parse("due.to_date")), {"due": stored}) == "2024-06-24"
        assert evaluate(accessor.extract_sql(FieldPath.parse("due")), {"due": stored}) == "2024-06-24"

    def test_unknown_side_defaults_to_end(self, accessor):
        assert accessor.side(FieldPath.parse("due.middle")) == "to_date"

    def test_overdue_flag(self, evaluate, accessor):
        sql = accessor.overdue_sql(FieldPath("due"))
        assert evaluate(sql, {"due": {"to_date": "2024-06-24", "is_overdue": True}}) == 1
        assert evaluate(sql, {"due": "2024-06-24"}) is None


class TestArrayContainmentAccessor:
    """Test element iteration for arrays."""

    @pytest.fixture
    def accessor(self):
        return ArrayContainmentAccessor()

    def elements(self, evaluate, accessor, payload):
        path = FieldPath("tags")
        sql = (
            f"(SELECT group_concat({accessor.element_value_sql('e')}, '|') "
            f"FROM {accessor.elements_sql(path, 'e')})"
        )
        return evaluate(sql, payload)

    def test_plain_elements(self, evaluate, accessor):
        assert self.elements(evaluate, accessor, {"tags": ["a", "b"]}) == "a|b"

    def test_value_objects_compare_by_value(self, evaluate, accessor):
        assert self.elements(evaluate, accessor, {"tags": [{"value": "a"}, "b"]}) == "a|b"

    def test_numbers_compare_as_text(self, evaluate, accessor):
        assert self.elements(evaluate, accessor, {"tags": [1, 2.5]}) == "1|2.5"

    def test_missing_array_has_no_elements(self, evaluate, accessor):
        assert self.elements(evaluate, accessor, {}) is None

    def test_raw_sql_returns_json_text(self, evaluate, accessor):
        assert evaluate(accessor.raw_sql(FieldPath("tags")), {"tags": ["a"]}) == '["a"]'
