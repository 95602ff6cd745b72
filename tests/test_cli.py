"""Tests for the tablemirror CLI.

These tests verify:
- Status and describe output for empty and populated mirrors
- Querying cached tables with filters, sorting and projection
- Invalidation, purging and configuration commands
- Error handling and exit codes
"""

import click
import pytest
from click.testing import CliRunner

from tablemirror.cache import CacheConfig, CacheCoordinator
from tablemirror.cli.main import cli, parse_sort, parse_where

from conftest import PROJECT_RECORDS, PROJECT_STRUCTURE, SOLUTIONS, TABLES, FakeRemote


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "TABLEMIRROR_CACHE_DIR",
        "TABLEMIRROR_RECORDS_TTL",
        "TABLEMIRROR_METADATA_TTL",
        "TABLEMIRROR_STRICT_OPERATORS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def populated(cache_dir):
    """Mirror holding the sample project table, cached on the real clock."""
    remote = FakeRemote(
        structures={"tbl_1": PROJECT_STRUCTURE},
        records={"tbl_1": PROJECT_RECORDS},
        solutions=SOLUTIONS,
        tables=TABLES,
    )
    with CacheCoordinator(remote=remote, config=CacheConfig(cache_dir=cache_dir)) as coordinator:
        coordinator.query("tbl_1")
    return cache_dir


@pytest.fixture
def run(cache_dir):
    runner = CliRunner()

    def _run(*args, **kwargs):
        return runner.invoke(cli, ["-C", str(cache_dir), *args], **kwargs)

    return _run


class TestArgumentParsing:
    def test_parse_sort(self):
        assert parse_sort("due_date:desc") == ("due_date", "desc")
        assert parse_sort("title") == ("title", "asc")

    def test_parse_where_reads_json_values(self):
        assert parse_where("priority=5") == ("priority", 5)
        assert parse_where('tags=["a","b"]') == ("tags", ["a", "b"])
        assert parse_where("status=Active") == ("status", "Active")

    def test_parse_where_requires_equals(self):
        with pytest.raises(click.BadParameter, match="Expected field=value"):
            parse_where("status")


class TestStatus:
    """Test status and describe commands."""

    def test_empty_cache(self, run):
        result = run("status")
        assert result.exit_code == 0
        assert "Cache is empty" in result.output

    def test_populated(self, run, populated):
        result = run("status")
        assert result.exit_code == 0
        assert "Categories (2)" in result.output
        assert "records" in result.output
        assert "schemas" in result.output

    def test_show_all_categories(self, run, populated):
        result = run("status", "--all")
        assert result.exit_code == 0
        assert "Categories (8)" in result.output

    def test_json(self, run, populated):
        result = run("status", "--json")
        assert result.exit_code == 0
        assert '"records_ttl": 43200' in result.output
        assert '"category": "records"' in result.output

    def test_describe(self, run, populated):
        result = run("describe")
        assert result.exit_code == 0
        assert "Cache: " in result.output
        assert "records: 5 rows (5 live, 1 scopes), next expiry in" in result.output
        assert "TTL: records 12h, metadata 7d" in result.output

    def test_describe_empty(self, run):
        result = run("describe")
        assert result.exit_code == 0
        assert "Categories: (empty)" in result.output


class TestQuery:
    """Test the query command."""

    def test_where_and_fields(self, run, populated):
        result = run("query", "tbl_1", "-w", "status=Active", "-s", "title", "--fields", "title")
        assert result.exit_code == 0
        assert "tbl_1 (2)" in result.output
        assert "Fix login bug" in result.output
        assert "Launch website" in result.output
        assert "Write docs" not in result.output

    def test_filter_json(self, run, populated):
        expression = '{"field": "tags", "comparison": "has_any_of", "value": ["docs"]}'
        result = run("query", "tbl_1", "-f", expression, "--json")
        assert result.exit_code == 0
        assert '"id": "r2"' in result.output
        assert '"id": "r1"' not in result.output

    def test_count(self, run, populated):
        result = run("query", "tbl_1", "-w", "priority=5", "--count")
        assert result.exit_code == 0
        assert result.output.strip() == "1"

    def test_limit_and_offset(self, run, populated):
        result = run("query", "tbl_1", "-s", "title", "-n", "2", "--offset", "1", "--json")
        assert result.exit_code == 0
        assert '"id": "r5"' in result.output
        assert '"id": "r3"' in result.output
        assert '"id": "r4"' not in result.output

    def test_no_matches(self, run, populated):
        result = run("query", "tbl_1", "-w", "status=Nope")
        assert result.exit_code == 0
        assert "No matching records" in result.output

    def test_unknown_field_warns(self, run, populated):
        result = run("query", "tbl_1", "-w", "nope=1")
        assert result.exit_code == 0
        assert "Unknown field 'nope'" in result.output

    def test_uncached_table_fails(self, run, populated):
        result = run("query", "tbl_2")
        assert result.exit_code == 1
        assert "Error" in result.output
        assert "records:tbl_2" in result.output

    def test_malformed_filter_fails(self, run, populated):
        result = run("query", "tbl_1", "-f", '{"field": "status"}')
        assert result.exit_code == 1
        assert "missing 'comparison'" in result.output


class TestMaintenance:
    """Test invalidate, purge and config commands."""

    def test_invalidate_records(self, run, populated):
        result = run("invalidate", "records", "-t", "tbl_1")
        assert result.exit_code == 0
        assert "Records cache invalidated for table tbl_1" in result.output
        assert "Rows removed: 5" in result.output
        assert run("query", "tbl_1").exit_code == 1

    def test_invalidate_records_needs_table(self, run, populated):
        result = run("invalidate", "records")
        assert result.exit_code == 1
        assert "table_id required" in result.output

    def test_invalidate_unknown_resource(self, run):
        result = run("invalidate", "widgets")
        assert result.exit_code == 1
        assert "Unknown resource" in result.output

    def test_invalidate_tables_for_solution(self, run, populated):
        result = run("invalidate", "tables", "-s", "sol_1")
        assert result.exit_code == 0
        assert "Tables cache invalidated for solution sol_1" in result.output

    def test_invalidate_schema(self, run, populated):
        result = run("invalidate-schema", "tbl_1")
        assert result.exit_code == 0
        assert "Schema invalidated for table tbl_1" in result.output
        assert "Rows removed: 6" in result.output

    def test_purge(self, run, populated):
        result = run("purge", "-y")
        assert result.exit_code == 0
        assert "Purged 0 expired rows" in result.output

    def test_purge_cancelled(self, run, populated):
        result = run("purge", input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.output

    def test_config(self, run, cache_dir):
        result = run("config")
        assert result.exit_code == 0
        assert "records_ttl" in result.output
        assert "43200" in result.output
        assert not (cache_dir / "config.json").exists()

    def test_config_save(self, run, cache_dir):
        result = run("config", "--save")
        assert result.exit_code == 0
        assert (cache_dir / "config.json").exists()
        assert CacheConfig.load(cache_dir / "config.json").cache_dir == cache_dir
