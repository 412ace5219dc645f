from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException

from guestbook.api.dependencies import get_entry_store, get_user_id
from guestbook.db.store import EntryStore, PersistenceError
from guestbook.models.schemas import EntryCreate, EntryListItem, EntryOut, ErrorBody, WhoAmI

router = APIRouter(tags=["entries"])
logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    # BSON dates hold milliseconds; truncate so /add echoes what /all later returns.
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


@router.post(
    "/add",
    status_code=201,
    response_model=EntryOut,
    responses={400: {"model": ErrorBody}, 500: {"model": ErrorBody}},
)
async def add_entry(
    payload: EntryCreate,
    store: EntryStore = Depends(get_entry_store),
    user_id: str = Depends(get_user_id),
) -> EntryOut:
    text = (payload.text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Text is required.")

    try:
        entry = await store.insert(text=text, created_at=utc_now(), user_id=user_id)
    except PersistenceError as exc:
        logger.exception("add_entry_failed", user_id=user_id)
        raise HTTPException(status_code=500, detail="Failed to save entry.") from exc
    return EntryOut.from_entry(entry)


@router.get("/all", response_model=list[EntryListItem], responses={500: {"model": ErrorBody}})
async def list_entries(store: EntryStore = Depends(get_entry_store)) -> list[EntryListItem]:
    try:
        entries = await store.list_all()
    except PersistenceError as exc:
        logger.exception("list_entries_failed")
        raise HTTPException(status_code=500, detail="Failed to fetch entries.") from exc
    return [EntryListItem.from_entry(entry) for entry in entries]


@router.get("/whoami", response_model=WhoAmI)
async def whoami(user_id: str = Depends(get_user_id)) -> WhoAmI:
    return WhoAmI(user_id=user_id)
