from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from guestbook.db.store import Entry


class EntryCreate(BaseModel):
    # Non-string values are rejected as a malformed body; blank text is checked by the route.
    text: str | None = None


class _EntryFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    created_at: datetime = Field(alias="createdAt")
    user_id: str = Field(alias="userId")

    @classmethod
    def from_entry(cls, entry: Entry):
        return cls(id=entry.id, text=entry.text, created_at=entry.created_at, user_id=entry.user_id)


class EntryOut(_EntryFields):
    """Response to POST /add."""

    id: str


class EntryListItem(_EntryFields):
    """One item of GET /all; the storage identifier keeps its document key."""

    id: str = Field(alias="_id")


class WhoAmI(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")


class ErrorBody(BaseModel):
    error: str
