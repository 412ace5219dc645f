from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from bson.errors import BSONError
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from guestbook.config import Settings

COLLECTION_NAME = "entries"
_PROJECTION = {"text": 1, "createdAt": 1, "userId": 1}
# Documents the driver cannot encode (e.g. lone surrogates) fail before reaching the server.
_STORE_ERRORS = (PyMongoError, BSONError, UnicodeEncodeError)

logger = structlog.get_logger(__name__)


class PersistenceError(Exception):
    """Raised when the document store cannot complete an operation."""


@dataclass(frozen=True)
class Entry:
    id: str
    text: str
    created_at: datetime
    user_id: str


def _to_entry(doc: dict[str, Any]) -> Entry:
    return Entry(
        id=str(doc["_id"]),
        text=doc.get("text", ""),
        created_at=doc["createdAt"],
        user_id=doc.get("userId", ""),
    )


class EntryStore:
    """Shared handle to the ``entries`` collection, opened once at startup."""

    def __init__(self, client: Any, collection: Any) -> None:
        self._client = client
        self._collection = collection

    @classmethod
    async def connect(cls, settings: Settings, client: Any | None = None) -> "EntryStore":
        """Open the client, verify the server answers, and ensure the ``createdAt`` index.

        Raises PersistenceError if the server is unreachable within the
        selection timeout or rejects the credentials.
        """

        if client is None:
            client = AsyncMongoClient(
                settings.mongodb_uri,
                serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
                tz_aware=True,
            )

        try:
            await client.admin.command("ping")
            collection = client[settings.db_name][COLLECTION_NAME]
            await collection.create_index([("createdAt", ASCENDING)])
        except PyMongoError as exc:
            await client.close()
            raise PersistenceError(f"Could not connect to MongoDB: {exc}") from exc

        logger.info("entry_store_connected", db_name=settings.db_name, collection=COLLECTION_NAME)
        return cls(client=client, collection=collection)

    async def insert(self, text: str, created_at: datetime, user_id: str) -> Entry:
        doc = {"text": text, "createdAt": created_at, "userId": user_id}
        try:
            result = await self._collection.insert_one(dict(doc))
        except _STORE_ERRORS as exc:
            raise PersistenceError("insert failed") from exc
        return Entry(id=str(result.inserted_id), text=text, created_at=created_at, user_id=user_id)

    async def list_all(self) -> list[Entry]:
        """Return every entry, newest first. No limit."""

        try:
            cursor = self._collection.find({}, projection=_PROJECTION).sort("createdAt", DESCENDING)
            docs = await cursor.to_list(length=None)
        except _STORE_ERRORS as exc:
            raise PersistenceError("find failed") from exc
        return [_to_entry(doc) for doc in docs]

    async def close(self) -> None:
        await self._client.close()
