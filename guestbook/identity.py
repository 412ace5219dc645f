"""Anonymous per-browser identity carried in a ``userId`` cookie."""

from __future__ import annotations

import secrets
from typing import Any, Callable

import structlog
from starlette.datastructures import Headers, MutableHeaders

USER_ID_COOKIE = "userId"
USER_ID_MAX_AGE = 60 * 60 * 24 * 365  # ~1 year, in seconds
_USER_ID_BYTES = 6


def parse_cookies(header: str | None) -> dict[str, str]:
    if not header:
        return {}

    cookies: dict[str, str] = {}
    for part in header.split(";"):
        key, _, value = part.strip().partition("=")
        if not key:
            continue
        cookies[key] = value
    return cookies


def generate_user_id() -> str:
    """Return a short URL-safe id: 6 random bytes, base64url without padding (8 chars)."""

    return secrets.token_urlsafe(_USER_ID_BYTES)


def build_user_id_cookie(user_id: str, max_age: int = USER_ID_MAX_AGE) -> str:
    parts = [
        f"{USER_ID_COOKIE}={user_id}",
        "Path=/",
        "SameSite=Lax",
        f"Max-Age={max_age}",
        "HttpOnly",
    ]
    return "; ".join(parts)


def resolve_user_id(cookie_header: str | None) -> tuple[str, bool]:
    """Return ``(user_id, minted)``; ``minted`` is True when the caller must set the cookie."""

    user_id = parse_cookies(cookie_header).get(USER_ID_COOKIE)
    if user_id:
        return user_id, False
    return generate_user_id(), True


class IdentityMiddleware:
    """Stamps every HTTP request with ``request.state.user_id``.

    Browsers without a ``userId`` cookie get a freshly minted id and a single
    ``Set-Cookie`` header on the response.
    """

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        user_id, minted = resolve_user_id(Headers(scope=scope).get("cookie"))
        state = scope.setdefault("state", {})
        state["user_id"] = user_id
        state["user_id_minted"] = minted
        structlog.contextvars.bind_contextvars(user_id=user_id)

        if not minted:
            await self.app(scope, receive, send)
            return

        cookie = build_user_id_cookie(user_id)

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                MutableHeaders(scope=message).append("set-cookie", cookie)
            await send(message)

        await self.app(scope, receive, send_wrapper)
