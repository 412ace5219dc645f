from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

SERVICE_NAME = "guestbook"

_CONFIGURED = False


def _add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _drop_color_message(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # uvicorn duplicates every message with ANSI colors under this key.
    event_dict.pop("color_message", None)
    return event_dict


def resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: int | str = logging.INFO) -> None:
    """Render structlog events and stdlib records as one JSON line each on stdout.

    Events carry the request context bound by the middlewares (request id,
    path, method, user id). uvicorn's access logger is muted because
    ``RequestContextMiddleware`` emits a richer ``http_request`` event.
    No-op after the first call.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    level = resolve_level(level)
    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service,
        _drop_color_message,
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True
    logging.getLogger("uvicorn.access").disabled = True
    # Driver heartbeat and topology chatter.
    logging.getLogger("pymongo").setLevel(max(level, logging.WARNING))

    _CONFIGURED = True
