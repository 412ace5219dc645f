"""Request-scoped accessors for the store handle and the caller's identity."""

from __future__ import annotations

from fastapi import Request

from guestbook.db.store import EntryStore


def get_entry_store(request: Request) -> EntryStore:
    return request.app.state.entry_store


def get_user_id(request: Request) -> str:
    return request.state.user_id
