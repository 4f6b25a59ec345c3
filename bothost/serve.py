"""bothost live server — dashboard API + bot supervisor in one event loop."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from bothost.auth.sessions import SessionStore
from bothost.cli.context import build_service, prepare
from bothost.config import settings
from bothost.dashboard.app import configure, dashboard_app

_logger = logging.getLogger(__name__)


async def main(host: str | None = None, port: int | None = None) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    service = build_service(settings)
    await prepare(service, settings)
    configure(service, SessionStore(settings.session_ttl_seconds))

    host = host or settings.host
    port = port or settings.port
    _logger.info("bothost serving on http://%s:%d", host, port)

    # uvicorn installs its own SIGINT/SIGTERM handlers and returns from
    # serve() once it has shut the HTTP side down.
    config = uvicorn.Config(dashboard_app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        await service.supervisor.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
