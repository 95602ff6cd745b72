"""Shared fixtures: a fake remote source, a controllable clock and sample data."""

import copy
from collections import Counter

import pytest

from tablemirror.cache import CacheConfig, CacheCoordinator
from tablemirror.query.builder import QueryBuilder
from tablemirror.schema import TableSchema
from tablemirror.storage import DocumentStore, Scope

START_TIME = 1_700_000_000.0

PROJECT_STRUCTURE = {
    "id": "tbl_1",
    "name": "Projects",
    "solution": "sol_1",
    "structure": [
        {"slug": "title", "label": "Title", "field_type": "textfield"},
        {"slug": "status", "label": "Status", "field_type": "statusfield"},
        {"slug": "priority", "label": "Priority", "field_type": "numberfield"},
        {"slug": "tags", "label": "Tags", "field_type": "tagsfield"},
        {"slug": "due_date", "label": "Due", "field_type": "duedatefield"},
        {"slug": "owner", "label": "Owner", "field_type": "userfield"},
        {"slug": "files", "label": "Files", "field_type": "filefield"},
        {"slug": "done", "label": "Done", "field_type": "yesnofield"},
    ],
}

# One logical value per field, stored in every shape the remote produces
PROJECT_RECORDS = [
    {
        "id": "r1",
        "title": "Launch website",
        "status": {"value": "Active", "label": "Active"},
        "priority": 5,
        "tags": ["urgent", "web"],
        "due_date": {
            "from_date": {"date": "2024-06-01T00:00:00Z"},
            "to_date": {"date": "2024-06-24T00:00:00Z"},
            "is_overdue": True,
        },
        "owner": ["u1"],
        "files": [{"name": "spec.pdf", "type": "pdf"}],
        "done": True,
    },
    {
        "id": "r2",
        "title": "Write docs",
        "status": {"value": "Backlog"},
        "priority": 2,
        "tags": ["docs"],
        "due_date": {"to_date": "2024-07-10", "is_overdue": False},
        "owner": ["u2"],
        "files": [],
        "done": False,
    },
    {
        "id": "r3",
        "title": "Fix login bug",
        "status": "Active",
        "priority": "3",
        "tags": ["urgent", "backend", "web"],
        "due_date": "2024-05-15",
        "owner": ["u1", "u2"],
        "files": [{"name": "trace.log", "type": "log"}],
    },
    {
        "id": "r4",
        "title": "",
        "status": None,
        "priority": "n/a",
        "tags": [],
        "due_date": {"date": "2024-08-01T12:00:00Z"},
        "owner": [],
    },
    {
        "id": "r5",
        "title": "Archive",
        "status": {"value": "Done"},
        "priority": 1,
        "tags": [{"value": "web"}],
        "due_date": None,
        "files": [{"name": "old.zip", "type": "zip"}],
    },
]

SOLUTIONS = [
    {"id": "sol_1", "name": "Operations"},
    {"id": "sol_2", "name": "Marketing"},
]

TABLES = [
    {"id": "tbl_1", "name": "Projects", "solution": "sol_1"},
    {"id": "tbl_2", "name": "Tasks", "solution": "sol_1"},
    {"id": "tbl_3", "name": "Campaigns", "solution": "sol_2"},
]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemote:
    """In-memory remote source satisfying every provider protocol."""

    def __init__(self, structures=None, records=None, solutions=None, tables=None):
        self.structures = copy.deepcopy(structures or {})
        self.records = copy.deepcopy(records or {})
        self.solutions = copy.deepcopy(solutions or [])
        self.tables = copy.deepcopy(tables or [])
        self.members = [{"id": "u1", "email": "ada@example.com"}, {"id": "u2", "email": "bo@example.com"}]
        self.teams = [{"id": "team_1", "name": "Core", "members": ["u1", "u2"]}]
        self.views = {"tbl_1": [{"id": "view_1", "application": "tbl_1", "label": "Board"}]}
        self.deleted = {"sol_1": [{"id": "r99", "solution": "sol_1"}]}
        self.calls = Counter()
        self.fail_on_page = None

    def fetch_schema(self, table_id):
        self.calls["fetch_schema"] += 1
        if table_id not in self.structures:
            raise KeyError(f"No such table: {table_id}")
        return copy.deepcopy(self.structures[table_id])

    def fetch_records(self, table_id, offset, limit):
        self.calls["fetch_records"] += 1
        if self.fail_on_page is not None and self.calls["fetch_records"] >= self.fail_on_page:
            raise ConnectionError("remote unavailable")
        rows = self.records.get(table_id, [])
        return {"items": copy.deepcopy(rows[offset : offset + limit]), "total": len(rows)}

    def list_solutions(self):
        self.calls["list_solutions"] += 1
        return copy.deepcopy(self.solutions)

    def list_tables(self, solution_id=None):
        self.calls["list_tables"] += 1
        return [
            copy.deepcopy(t)
            for t in self.tables
            if solution_id is None or t.get("solution") == solution_id
        ]

    def list_members(self):
        self.calls["list_members"] += 1
        return copy.deepcopy(self.members)

    def list_teams(self):
        self.calls["list_teams"] += 1
        return copy.deepcopy(self.teams)

    def list_views(self, table_id):
        self.calls["list_views"] += 1
        return copy.deepcopy(self.views.get(table_id, []))

    def list_deleted_records(self, solution_id):
        self.calls["list_deleted_records"] += 1
        return copy.deepcopy(self.deleted.get(solution_id, []))


@pytest.fixture
def clock():
    """Clock frozen at START_TIME."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """In-memory document store on the fake clock."""
    store = DocumentStore(":memory:", clock=clock)
    yield store
    store.close()


@pytest.fixture
def project_records():
    return copy.deepcopy(PROJECT_RECORDS)


@pytest.fixture
def project_schema():
    return TableSchema.from_structure(PROJECT_STRUCTURE)


@pytest.fixture
def loaded_store(store, project_records):
    """Store holding the sample project records under records:tbl_1."""
    store.bulk_replace(Scope.records("tbl_1"), project_records, ttl=3600)
    return store


@pytest.fixture
def run_filter(loaded_store, project_schema):
    """Run a filter over the sample records and return matching ids, sorted."""

    def _run(expression, schema=project_schema):
        builder = QueryBuilder(loaded_store, Scope.records("tbl_1"), schema=schema)
        return sorted(r["id"] for r in builder.filter(expression).execute())

    return _run


@pytest.fixture
def remote():
    """Fake remote source holding the sample workspace."""
    tasks_structure = {
        "id": "tbl_2",
        "name": "Tasks",
        "solution": "sol_1",
        "structure": [{"slug": "title", "field_type": "textfield"}],
    }
    return FakeRemote(
        structures={"tbl_1": PROJECT_STRUCTURE, "tbl_2": tasks_structure},
        records={"tbl_1": PROJECT_RECORDS, "tbl_2": []},
        solutions=SOLUTIONS,
        tables=TABLES,
    )


@pytest.fixture
def config(tmp_path):
    """Cache configuration rooted in a temporary directory."""
    return CacheConfig(cache_dir=tmp_path / "cache", lock_timeout=5.0)


@pytest.fixture
def coordinator(remote, config, clock):
    """Coordinator over the fake remote, on the fake clock."""
    coordinator = CacheCoordinator(remote=remote, config=config, clock=clock)
    yield coordinator
    coordinator.close()
