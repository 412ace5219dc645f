from __future__ import annotations

import uuid
from time import perf_counter
from typing import Any, Callable

import structlog
from starlette.datastructures import Headers, MutableHeaders

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware:
    """Wraps each request in a structlog context and emits one access event.

    The request id is taken from an incoming ``X-Request-ID`` header when a
    proxy supplied one. The access event also carries the visitor's
    ``user_id`` (bound by the identity step) and whether that id was minted
    by this request.
    """

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=scope.get("path"),
            method=scope.get("method"),
        )

        start = perf_counter()
        status_code = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            state = scope.get("state") or {}
            structlog.get_logger("access").info(
                "http_request",
                status_code=status_code,
                elapsed_ms=round((perf_counter() - start) * 1000.0, 2),
                new_visitor=bool(state.get("user_id_minted")),
            )
            structlog.contextvars.clear_contextvars()
