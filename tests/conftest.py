"""Shared fixtures: an in-memory Supabase stand-in and an API client wired to it."""

import copy
import os
import re
import uuid
from datetime import datetime, timezone

import pytest

os.environ.setdefault("JWT_SECRET", "test-secret")

from fastapi.testclient import TestClient

from app.core import security
from app.core.rate_limit import failed_login_tracker, limiter
from app.core.utils import parse_timestamp, utc_now_iso
from app.database.supabase_client import get_optional_supabase, get_supabase
from app.main import app
from app.modules.ai.clients import get_openai_client, get_openrouter_client
from app.modules.auth.email_service import EmailDeliveryError, get_email_service

DEFAULT_PASSWORD = "correct-horse-1"


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _comparable(value):
    if isinstance(value, str):
        parsed = parse_timestamp(value) if "T" in value or " " in value else None
        if parsed is not None:
            return parsed
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return value


def _like_to_regex(pattern):
    parts = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _split_or_filter(filters):
    """Split a PostgREST or= filter on top-level commas, unquoting "..." values."""
    conditions, current, quoted = [], [], False
    chars = iter(filters)
    for ch in chars:
        if quoted and ch == "\\":
            current.append(next(chars, ""))
        elif ch == '"':
            quoted = not quoted
        elif ch == "," and not quoted:
            conditions.append("".join(current))
            current = []
        else:
            current.append(ch)
    conditions.append("".join(current))
    return conditions


class FakeQuery:
    """Just enough of the postgrest query builder for the services."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.columns = "*"
        self.count_mode = None
        self.on_conflict = None
        self.filters = []
        self.orders = []
        self.row_limit = None
        self.row_offset = 0

    # Actions

    def select(self, columns="*", count=None):
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, rows):
        self.action = "insert"
        self.payload = rows
        return self

    def upsert(self, rows, on_conflict=None):
        self.action = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict
        return self

    def update(self, values):
        self.action = "update"
        self.payload = values
        return self

    def delete(self):
        self.action = "delete"
        return self

    # Filters

    def _compare(self, column, value, op):
        def check(row):
            current = row.get(column)
            if current is None or value is None:
                return False
            left, right = _comparable(current), _comparable(value)
            numbers = isinstance(left, (int, float)) and isinstance(right, (int, float))
            if type(left) is not type(right) and not numbers:
                left, right = str(current), str(value)
            return op(left, right)
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

    def is_(self, column, value):
        if value in ("null", None):
            self.filters.append(lambda row: row.get(column) is None)
        else:
            self.filters.append(lambda row: row.get(column) == value)
        return self

    def ilike(self, column, pattern):
        regex = _like_to_regex(pattern)
        self.filters.append(lambda row: row.get(column) is not None and bool(regex.fullmatch(str(row[column]))))
        return self

    def or_(self, filters):
        checks = []
        for condition in _split_or_filter(filters):
            column, operator, value = condition.split(".", 2)
            if operator == "ilike":
                regex = _like_to_regex(value)
                checks.append(lambda row, column=column, regex=regex:
                              row.get(column) is not None and bool(regex.fullmatch(str(row[column]))))
            elif operator == "eq":
                checks.append(lambda row, column=column, value=value: str(row.get(column)) == value)
            else:
                raise ValueError(f"Unsupported or_ operator {operator}")
        self.filters.append(lambda row: any(check(row) for check in checks))
        return self

    # Modifiers

    def order(self, column, desc=False, nullsfirst=None):
        self.orders.append((column, desc, nullsfirst))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def offset(self, count):
        self.row_offset = count
        return self

    # Execution

    def _matching(self):
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [name.strip() for name in self.columns.split(",") if name.strip()]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def _new_row(self, row):
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", utc_now_iso())
        return stored

    def execute(self):
        if self.table in self.db.fail_tables or (self.table, self.action) in self.db.fail_actions:
            raise Exception(f"Simulated failure for table {self.table}")
        self.db.calls.append((self.table, self.action))
        rows = self.db.tables.setdefault(self.table, [])

        if self.action == "select":
            matched = self._matching()
            for column, desc, nullsfirst in reversed(self.orders):
                present = [row for row in matched if row.get(column) is not None]
                missing = [row for row in matched if row.get(column) is None]
                present.sort(key=lambda row: _comparable(row[column]), reverse=desc)
                # Postgres puts nulls first for descending order unless told otherwise
                nulls_first = desc if nullsfirst is None else nullsfirst
                matched = missing + present if nulls_first else present + missing
            count = len(matched) if self.count_mode else None
            matched = matched[self.row_offset:]
            if self.row_limit is not None:
                matched = matched[:self.row_limit]
            matched = matched[:self.db.max_rows]
            return FakeResponse([self._project(row) for row in matched], count)

        if self.action == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = [self._new_row(row) for row in payload]
            rows.extend(created)
            return FakeResponse(copy.deepcopy(created))

        if self.action == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            keys = [key.strip() for key in (self.on_conflict or "id").split(",")]
            written = []
            for row in payload:
                existing = next(
                    (r for r in rows if all(r.get(key) == row.get(key) for key in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    written.append(existing)
                else:
                    stored = self._new_row(row)
                    rows.append(stored)
                    written.append(stored)
            return FakeResponse(copy.deepcopy(written))

        if self.action == "update":
            matched = self._matching()
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        if self.action == "delete":
            matched = self._matching()
            self.db.tables[self.table] = [row for row in rows if row not in matched]
            return FakeResponse(copy.deepcopy(matched))

        raise ValueError(f"Unknown action {self.action}")


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.storage.fail_uploads:
            raise RuntimeError("storage unavailable")
        files = self.storage.files.setdefault(self.name, {})
        if path in files and (file_options or {}).get("upsert") != "true":
            raise RuntimeError("The resource already exists")
        files[path] = {"data": file, "options": file_options or {}}
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path):
        return f"https://storage.test/object/public/{self.name}/{path}"


class FakeStorage:
    def __init__(self):
        self.files = {}
        self.fail_uploads = False

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        if ("rpc", self.name) in self.db.fail_actions:
            raise Exception(f"Simulated failure for function {self.name}")
        self.db.calls.append(("rpc", self.name))
        if self.name == "increment_total_stars":
            for row in self.db.rows("users"):
                if row["id"] == self.params["p_user_id"]:
                    row["total_stars"] = (row.get("total_stars") or 0) + self.params["p_amount"]
                    return FakeResponse(row["total_stars"])
            return FakeResponse(None)
        raise ValueError(f"Unsupported function: {self.name}")


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.fail_tables = set()
        self.fail_actions = set()
        self.calls = []
        # PostgREST db-max-rows
        self.max_rows = 1000
        self.storage = FakeStorage()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)

    def rows(self, name):
        return self.tables.setdefault(name, [])

    def add(self, name, /, **row):
        stored = {"id": str(uuid.uuid4()), "created_at": utc_now_iso(), **row}
        self.rows(name).append(stored)
        return stored


class FakeEmailService:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_otp_email(self, to, code, otp_type):
        if self.fail:
            raise EmailDeliveryError("Failed to send email")
        self.sent.append({"to": to, "code": code, "type": otp_type})
        return {"id": "email-1"}


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(security, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def client(db, email_service):
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_optional_supabase] = lambda: db
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_openrouter_client] = lambda: None
    app.dependency_overrides[get_openai_client] = lambda: None
    limiter.enabled = False
    failed_login_tracker.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
    failed_login_tracker.reset()


@pytest.fixture
def make_user(db):
    """Insert a users row; the password is DEFAULT_PASSWORD unless given."""
    def _make_user(username="alice", password=DEFAULT_PASSWORD, **fields):
        row = {
            "email": f"{username}@example.com",
            "username": username,
            "first_name": username.title(),
            "last_name": "Tester",
            "password_hash": security.hash_password(password),
            "role": "user",
            "level": None,
            "current_lesson": 1,
            "total_stars": 0,
            "email_verified": True,
        }
        row.update(fields)
        return db.add("users", **row)
    return _make_user


def auth_headers(user):
    return {"Authorization": f"Bearer {security.create_access_token(user)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user("admin", role="admin")


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def seed_lesson(db):
    """Insert a lesson with one active activity per given type, in order."""
    def _seed_lesson(level="A1", number=1, topic="Greetings", activity_types=("warm_up_speaking",)):
        lesson = db.add("lessons", id=f"{level}-L{number:02d}", level=level, lesson_number=number,
                        topic=topic, version=1)
        activities = [
            db.add("lesson_activities", lesson_id=lesson["id"], activity_type=activity_type,
                   activity_order=order, content={}, active=True)
            for order, activity_type in enumerate(activity_types, start=1)
        ]
        return lesson, activities
    return _seed_lesson
