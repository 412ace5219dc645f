from __future__ import annotations

import enum
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from guestbook.api.entries import router as entries_router
from guestbook.config import Settings, get_settings
from guestbook.db.store import EntryStore
from guestbook.identity import IdentityMiddleware
from guestbook.observability.middleware import RequestContextMiddleware

StoreFactory = Callable[[Settings], Awaitable[Any]]

logger = structlog.get_logger(__name__)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Invalid request body."}, status_code=400)


def create_app(settings: Settings | None = None, connect: StoreFactory | None = None) -> FastAPI:
    """Build the guestbook app.

    The store is opened in the lifespan startup, so no request is served
    before the MongoDB connection is ready. ``connect`` replaces
    ``EntryStore.connect`` (tests pass an in-memory store).
    """

    settings = settings or get_settings()
    connect = connect or EntryStore.connect

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        application.state.connection_state = ConnectionState.CONNECTING
        logger.info("entry_store_connecting", db_name=settings.db_name)
        try:
            store = await connect(settings)
        except Exception:
            application.state.connection_state = ConnectionState.FAILED
            logger.exception("entry_store_connect_failed", db_name=settings.db_name)
            raise

        application.state.entry_store = store
        application.state.connection_state = ConnectionState.READY
        logger.info("entry_store_ready", db_name=settings.db_name)
        try:
            yield
        finally:
            await store.close()
            application.state.connection_state = ConnectionState.DISCONNECTED
            logger.info("entry_store_closed")

    application = FastAPI(title="Guestbook", version="0.1.0", lifespan=lifespan)
    application.state.connection_state = ConnectionState.DISCONNECTED
    application.add_exception_handler(StarletteHTTPException, _http_error)
    application.add_exception_handler(RequestValidationError, _validation_error)

    # Last added runs first: request context wraps identity.
    application.add_middleware(IdentityMiddleware)
    application.add_middleware(RequestContextMiddleware)

    application.include_router(entries_router)

    @application.get("/health")
    async def health(request: Request) -> dict[str, str]:
        state = request.app.state.connection_state
        if state is not ConnectionState.READY:
            raise HTTPException(status_code=503, detail=f"Store is {state.value}")
        return {"status": "ok"}

    # Mounted last so the API routes take precedence over files.
    if settings.static_path.is_dir():
        application.mount("/", StaticFiles(directory=settings.static_path, html=True), name="static")

    return application
