import re
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import database
from main import app

SUPABASE_ENV = ["SUPABASE_URL", "SUPABASE_KEY", "VITE_SUPABASE_URL", "VITE_SUPABASE_KEY"]


OR_ILIKE = re.compile(r'(\w+)\.ilike\.("(?:[^"\\]|\\.)*"|[^,]*)')


def ilike(value, pattern):
    """Postgres ILIKE, with PostgREST's ``*`` accepted as ``%``."""
    if value is None:
        return False
    parts = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch in "%*":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.fullmatch("".join(parts), value, re.IGNORECASE | re.DOTALL) is not None


def parse_or_filter(filters):
    conditions = []
    for column, value in OR_ILIKE.findall(filters):
        if value.startswith('"'):
            value = re.sub(r"\\(.)", r"\1", value[1:-1])
        conditions.append((column, value))
    return conditions


class FakeQuery:
    """Records postgrest builder calls and applies the filters to canned rows."""

    def __init__(self, client):
        self.client = client
        self.inserted = None
        self.predicates = []
        self.order_by = None

    def _record(self, name, *args, **kwargs):
        self.client.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args, **kwargs)

    def eq(self, column, value):
        self.predicates.append(lambda row: row.get(column) == value)
        return self._record("eq", column, value)

    def ilike(self, column, pattern):
        self.predicates.append(lambda row: ilike(row.get(column), pattern))
        return self._record("ilike", column, pattern)

    def or_(self, filters):
        conditions = parse_or_filter(filters)
        self.predicates.append(lambda row: any(ilike(row.get(c), p) for c, p in conditions))
        return self._record("or_", filters)

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self._record("order", column, desc=desc)

    def insert(self, rows):
        self.inserted = rows
        return self._record("insert", rows)

    def execute(self):
        if self.client.error is not None:
            raise self.client.error
        if self.inserted is not None:
            return SimpleNamespace(data=[dict(row, id=101) for row in self.inserted])
        rows = [row for row in self.client.rows if all(p(row) for p in self.predicates)]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda row: row.get(column) or "", reverse=desc)
        return SimpleNamespace(data=rows)


class FakeSupabase:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []
        self.tables = []

    def table(self, name):
        self.tables.append(name)
        return FakeQuery(self)


@pytest.fixture
def unconfigured(monkeypatch):
    for name in SUPABASE_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(database, "_client", None)
    monkeypatch.setattr(database, "_warned_unconfigured", False)


@pytest.fixture
def fake_supabase(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://test-project.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "test-anon-key")
    fake = FakeSupabase(rows=[
        {"id": 1, "name": "Asha Rao", "blood_group": "B+", "age": 29, "location": "Pune, MH",
         "email": "asha.rao@lifeware.org", "phone_number": None, "last_donated": "2024-03-02"},
        {"id": 2, "name": "Ravi Menon", "blood_group": "O-", "age": 41, "location": "Kochi, KL",
         "email": None, "phone_number": "+91 98470 00000", "last_donated": None},
    ])
    monkeypatch.setattr(database, "_client", fake)
    return fake


@pytest.fixture
def client():
    return TestClient(app)
