import copy
import os
import uuid
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TIMEZONE", "Asia/Bangkok")

from fastapi.testclient import TestClient  # noqa: E402

from schoolops.core import clock, line_client  # noqa: E402
from schoolops.db.supabase import get_supabase  # noqa: E402
from schoolops.main import app  # noqa: E402

NOW = datetime(2026, 10, 18, 10, 0, tzinfo=ZoneInfo("Asia/Bangkok"))
CRON_SECRET = os.environ["CRON_SECRET"]


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Just enough of the postgrest query builder for the routers."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.limit_to = None

    def select(self, columns="*", count=None):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def upsert(self, payload):
        self.op = "upsert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def _compare(self, column, value, test):
        def check(row):
            current = row.get(column)
            return current is not None and test(current, value)
        self.filters.append(check)
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gt(self, column, value):
        return self._compare(column, value, lambda a, b: a > b)

    def gte(self, column, value):
        return self._compare(column, value, lambda a, b: a >= b)

    def lt(self, column, value):
        return self._compare(column, value, lambda a, b: a < b)

    def lte(self, column, value):
        return self._compare(column, value, lambda a, b: a <= b)

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, size):
        self.limit_to = size
        return self

    def _matches(self, row):
        return all(check(row) for check in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        failure = self.db.failures.get((self.table, self.op))
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table, [])

        if self.op in ("insert", "upsert"):
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for item in payload:
                row = dict(item)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", NOW.isoformat())
                if self.op == "upsert":
                    rows[:] = [r for r in rows if r.get("id") != row["id"]]
                rows.append(row)
                created.append(copy.deepcopy(row))
            return FakeResponse(created)

        matched = [row for row in rows if self._matches(row)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(matched))

        if self.op == "delete":
            rows[:] = [row for row in rows if not self._matches(row)]
            return FakeResponse(copy.deepcopy(matched))

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self.limit_to is not None:
            matched = matched[: self.limit_to]
        return FakeResponse(copy.deepcopy(matched), count=len(matched))


class FakeSupabase:
    """In-memory stand-in for the Supabase client, injected via dependency_overrides."""

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.failures = {}

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.setdefault(name, [])

    def add(self, table, **row):
        row.setdefault("id", str(uuid.uuid4()))
        self.rows(table).append(row)
        return row

    def find(self, table, **criteria):
        return [r for r in self.rows(table) if all(r.get(k) == v for k, v in criteria.items())]

    def fail(self, table, op, exc=None):
        self.failures[(table, op)] = exc or RuntimeError(f"{table} {op} failed")


def seed_school(db: FakeSupabase) -> None:
    db.add("admin_users", id="admin-1", role="branch_admin", display_name="Admin Ann", is_active=True)
    db.add("admin_users", id="teacher-1", role="teacher", display_name="Teacher Tom", is_active=True)
    db.add("admin_users", id="former-1", role="super_admin", display_name="Former", is_active=False)

    db.add("parents", id="parent-1", display_name="Parent One", line_user_id="U1234567890abcdef")
    db.add("parents", id="parent-2", display_name="Parent Two", line_user_id=None)

    db.add("students", id="student-1", name="Alice Smith", nickname="Ally", parent_id="parent-1")
    db.add("students", id="student-2", name="Bob Jones", nickname=None, parent_id="parent-2")

    db.add("classes", id="class-1", name="Robotics Level 1", status="started", branch_id="b-1",
           start_date="2026-09-01", end_date="2026-12-31", start_time="10:00:00", end_time="12:00:00")

    for number, day in enumerate(["2026-10-01", "2026-10-04", "2026-10-11"], start=1):
        db.add("class_schedules", id=f"past-{number}", class_id="class-1",
               session_number=number, session_date=day, status="completed")
    for number, day in enumerate(["2026-10-25", "2026-11-01", "2026-11-08"], start=4):
        db.add("class_schedules", id=f"future-{number}", class_id="class-1",
               session_number=number, session_date=day, status="scheduled")

    db.add("enrollments", id="enroll-1", student_id="student-1", class_id="class-1",
           parent_id="parent-1", status="active")
    db.add("enrollments", id="enroll-2", student_id="student-2", class_id="class-1",
           parent_id="parent-2", status="active")

    db.add("teachers", id="t-1", name="Tom", nickname="T")
    db.add("branches", id="b-1", name="Central")
    db.add("rooms", id="r-1", name="Room A")

    db.add("settings", id="settings-line", key="line",
           value={"messagingChannelAccessToken": "line-token", "enableNotifications": True})


@pytest.fixture
def db():
    fake = FakeSupabase()
    seed_school(fake)
    return fake


@pytest.fixture(autouse=True)
def frozen_now(monkeypatch):
    monkeypatch.setattr(clock, "now", lambda: NOW)
    return NOW


@pytest.fixture
def line_pushes(monkeypatch):
    pushes = []

    def fake_push(access_token, to, text):
        pushes.append({"access_token": access_token, "to": to, "text": text})

    monkeypatch.setattr(line_client, "push_text", fake_push)
    return pushes


@pytest.fixture
def client(db, line_pushes):
    app.dependency_overrides[get_supabase] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
