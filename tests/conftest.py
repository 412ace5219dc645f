from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import bson
import pytest
import structlog
from bson import ObjectId
from bson.codec_options import CodecOptions
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from structlog.testing import LogCapture

from guestbook.config import Settings, get_settings
from guestbook.db.store import EntryStore
from guestbook.main import create_app
from guestbook.observability import logging as guestbook_logging

_CODEC_OPTIONS = CodecOptions(tz_aware=True)
_ENV_VARS = ("HOST", "PORT", "DB_NAME", "MONGODB_URI", "SERVER_SELECTION_TIMEOUT_MS", "STATIC_DIR", "LOG_LEVEL")


class _InsertOneResult:
    def __init__(self, inserted_id: ObjectId) -> None:
        self.inserted_id = inserted_id


class MockCursor:
    def __init__(self, collection: "MockCollection", rows: list[dict]) -> None:
        self._collection = collection
        self._rows = rows

    def sort(self, key: str, direction: int) -> "MockCursor":
        self._rows = sorted(self._rows, key=lambda row: row[key], reverse=direction < 0)
        return self

    async def to_list(self, length: int | None = None) -> list[dict]:
        # pymongo raises when the cursor is iterated, not when it is built.
        self._collection.raise_if_failing()
        return self._rows if length is None else self._rows[:length]


class MockCollection:
    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.indexes: list[list[tuple[str, int]]] = []
        self.fail_with: Exception | None = None

    def raise_if_failing(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def create_index(self, keys: list[tuple[str, int]]) -> str:
        self.raise_if_failing()
        self.indexes.append(keys)
        return "_".join(f"{name}_{direction}" for name, direction in keys)

    async def insert_one(self, document: dict) -> _InsertOneResult:
        self.raise_if_failing()
        document["_id"] = ObjectId()
        # Stored the way the server keeps it: BSON-encoded, dates truncated to milliseconds.
        self.rows.append(bson.decode(bson.encode(document), codec_options=_CODEC_OPTIONS))
        return _InsertOneResult(document["_id"])

    def find(self, filter: dict, projection: dict | None = None) -> MockCursor:
        _ = filter
        rows = []
        for row in self.rows:
            if projection:
                rows.append({k: v for k, v in row.items() if k == "_id" or projection.get(k)})
            else:
                rows.append(dict(row))
        return MockCursor(self, rows)


class MockDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, MockCollection] = {}

    def __getitem__(self, name: str) -> MockCollection:
        return self.collections.setdefault(name, MockCollection())


class MockMongoClient:
    def __init__(self, ping_error: Exception | None = None) -> None:
        self.databases: dict[str, MockDatabase] = {}
        self.ping_error = ping_error
        self.closed = False

    def __getitem__(self, name: str) -> MockDatabase:
        return self.databases.setdefault(name, MockDatabase())

    @property
    def admin(self) -> "_MockAdmin":
        return _MockAdmin(self)

    async def close(self) -> None:
        self.closed = True


class _MockAdmin:
    def __init__(self, client: MockMongoClient) -> None:
        self._client = client

    async def command(self, name: str) -> dict[str, Any]:
        if self._client.ping_error is not None:
            raise self._client.ping_error
        return {"ok": 1.0}


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Settings read `.env` and `public/` relative to the working directory.
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    # main() configures logging process-wide; start every test from defaults.
    monkeypatch.setattr(guestbook_logging, "_CONFIGURED", False)

    yield

    get_settings.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def log_events() -> list[dict]:
    capture = LogCapture()
    structlog.configure(
        processors=[structlog.contextvars.merge_contextvars, capture],
        cache_logger_on_first_use=False,
    )

    yield capture.entries

    structlog.reset_defaults()


@pytest.fixture
def mongo_client() -> MockMongoClient:
    return MockMongoClient()


@pytest.fixture
def collection(mongo_client: MockMongoClient) -> MockCollection:
    return mongo_client["hirishi-mirror"]["entries"]


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def app(settings: Settings, mongo_client: MockMongoClient) -> FastAPI:
    async def connect(s: Settings) -> EntryStore:
        return await EntryStore.connect(s, client=mongo_client)

    return create_app(settings, connect=connect)


@pytest.fixture
async def api_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
