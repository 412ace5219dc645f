from __future__ import annotations

import sys

import structlog
import uvicorn
from pydantic import ValidationError

from guestbook.config import get_settings
from guestbook.main import create_app
from guestbook.observability.logging import configure_logging


def main() -> int:
    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging()
        structlog.get_logger("guestbook").error("invalid_settings", errors=str(exc))
        return 1

    configure_logging(settings.log_level)
    logger = structlog.get_logger("guestbook")
    app = create_app(settings)

    # lifespan="on" makes a failed startup fatal; sockets bind only after it completes.
    config = uvicorn.Config(app, host=settings.host, port=settings.port, lifespan="on", log_config=None)
    server = uvicorn.Server(config)
    logger.info("server_starting", url=f"http://localhost:{settings.port}")
    server.run()

    if not server.started:
        logger.error("server_startup_failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
