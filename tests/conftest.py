"""Pytest configuration and fixtures."""

import itertools
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from app.client.api import AIClient
from app.client.notifications import Notifier
from app.services.chat import ChatService

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)

PRIMARY_KEYS = {"user_status": "user_id"}
REACTION_KEYS = {"messages": "message_id", "dm_messages": "dm_message_id"}


def like_to_regex(pattern):
    """SQL LIKE pattern (backslash escapes) as a regular expression"""
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Records a PostgREST-style query chain and runs it against FakeSupabase."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.payload = None
        self.filters = []
        self.order_by = []
        self.limit_n = None
        self.on_conflict = None
        self.ignore_duplicates = False

    def select(self, columns="*"):
        self.columns = columns
        return self

    def insert(self, data):
        self.op, self.payload = "insert", data
        return self

    def upsert(self, data, on_conflict="", ignore_duplicates=False):
        self.op, self.payload = "upsert", data
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, data):
        self.op, self.payload = "update", data
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) != value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def ilike(self, column, pattern):
        regex = re.compile(like_to_regex(pattern), re.IGNORECASE | re.DOTALL)
        self.filters.append(lambda row: regex.fullmatch(row.get(column) or "") is not None)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def or_(self, expression):
        conditions = [part.split(".", 2) for part in expression.split(",")]
        self.filters.append(
            lambda row: any(
                op == "eq" and str(row.get(column)) == value
                for column, op, value in conditions
            )
        )
        return self

    def order(self, column, desc=False):
        self.order_by.append((column, desc))
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def execute(self):
        return self.db.execute(self)


class FakeRpcCall:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        return FakeResponse(self.db.rpc_handlers[self.name](self.params))


class FakeBucket:
    def __init__(self, storage, bucket):
        self.storage = storage
        self.bucket = bucket

    def upload(self, path, file, file_options=None):
        self.storage.files[(self.bucket, path)] = file
        self.storage.uploads.append((self.bucket, path, file_options))
        return {"Key": f"{self.bucket}/{path}"}

    def get_public_url(self, path):
        return f"https://storage.test/{self.bucket}/{path}"

    def download(self, path):
        return self.storage.files[(self.bucket, path)]


class FakeStorage:
    def __init__(self):
        self.files = {}
        self.uploads = []

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    """In-memory stand-in for the synchronous supabase Client."""

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.rpc_calls = []
        self.fail_on = set()
        self.storage = FakeStorage()
        self.rpc_handlers = {"increment_dm_unread": self._increment_dm_unread}
        self._ids = itertools.count(1)
        self._ticks = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpcCall(self, name, params)

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def timestamp(self):
        return (BASE_TIME + timedelta(seconds=next(self._ticks))).isoformat()

    def seed(self, table, **values):
        row = self._new_row(table, values)
        self.rows(table).append(row)
        return dict(row)

    def _new_row(self, table, data):
        row = dict(data)
        if table not in PRIMARY_KEYS:
            row.setdefault("id", next(self._ids))
            row.setdefault("created_at", self.timestamp())
        if table == "dm_channels":
            row.setdefault("last_message_from", None)
            row.setdefault("unread_count", 0)
        return row

    def _expand(self, query, row):
        if "reactions:message_reactions" in query.columns:
            key = REACTION_KEYS[query.table]
            row["reactions"] = [
                dict(r) for r in self.rows("message_reactions") if r.get(key) == row["id"]
            ]
        return row

    def execute(self, query):
        if query.table in self.fail_on:
            raise RuntimeError(f"backend unavailable: {query.table}")
        self.calls.append((query.table, query.op))

        rows = self.rows(query.table)
        matches = [r for r in rows if all(f(r) for f in query.filters)]

        if query.op == "select":
            for column, desc in reversed(query.order_by):
                matches.sort(key=lambda r: r.get(column) or "", reverse=desc)
            if query.limit_n is not None:
                matches = matches[:query.limit_n]
            return FakeResponse([self._expand(query, dict(r)) for r in matches])

        if query.op == "insert":
            items = query.payload if isinstance(query.payload, list) else [query.payload]
            result = []
            for item in items:
                row = self._new_row(query.table, item)
                rows.append(row)
                result.append(dict(row))
            return FakeResponse(result)

        if query.op == "upsert":
            items = query.payload if isinstance(query.payload, list) else [query.payload]
            keys = (query.on_conflict or PRIMARY_KEYS.get(query.table, "id")).split(",")
            result = []
            for item in items:
                existing = next(
                    (r for r in rows if all(r.get(k) == item.get(k) for k in keys)),
                    None,
                )
                if existing is None:
                    row = self._new_row(query.table, item)
                    rows.append(row)
                    result.append(dict(row))
                elif not query.ignore_duplicates:
                    existing.update(item)
                    result.append(dict(existing))
            return FakeResponse(result)

        if query.op == "update":
            for row in matches:
                row.update(query.payload)
            return FakeResponse([dict(r) for r in matches])

        if query.op == "delete":
            self.tables[query.table] = [r for r in rows if r not in matches]
            if query.table in REACTION_KEYS:
                key = REACTION_KEYS[query.table]
                deleted = {r["id"] for r in matches}
                self.tables["message_reactions"] = [
                    r for r in self.rows("message_reactions") if r.get(key) not in deleted
                ]
            return FakeResponse([dict(r) for r in matches])

        raise AssertionError(f"unsupported op {query.op}")

    def _increment_dm_unread(self, params):
        for row in self.rows("dm_channels"):
            if row["id"] == params["dm_channel_id"]:
                if row.get("last_message_from") == params["sender_id"]:
                    row["unread_count"] = (row.get("unread_count") or 0) + 1
                else:
                    row["unread_count"] = 1
                row["last_message_from"] = params["sender_id"]
                return [dict(row)]
        return []


class FakeSubscriber:
    """Realtime subscriber that lets tests push change notifications."""

    def __init__(self):
        self.active = {}
        self.history = []
        self._handles = itertools.count(1)

    async def subscribe(self, name, bindings, callback):
        handle = next(self._handles)
        self.active[handle] = (name, list(bindings), callback)
        self.history.append(name)
        return handle

    async def unsubscribe(self, handle):
        self.active.pop(handle, None)

    def emit(self, payload=None):
        for _, _, callback in list(self.active.values()):
            callback(payload or {"eventType": "INSERT"})


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def chat_service(fake_supabase):
    return ChatService(fake_supabase)


@pytest.fixture
def subscriber():
    return FakeSubscriber()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def mock_ai_client():
    """Create mock AI client."""
    client = Mock(spec=AIClient)
    client.index_messages = AsyncMock(return_value=None)
    client.generate = AsyncMock(return_value="world")
    client.generate_dm = AsyncMock(return_value="dm answer")
    client.search = AsyncMock(return_value=[])
    client.process_pdf = AsyncMock(return_value=3)
    client.tts = AsyncMock(return_value="YXVkaW8=")
    client.generate_video = AsyncMock(return_value="https://video.test/talk.mp4")
    return client
