from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

logger = logging.getLogger(__name__)


class HttpServer:
    """Binds an aiohttp application to one TCP address."""

    def __init__(self, app: web.Application, *, host: str, port: int) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        if self._runner is not None:
            return
        # In-flight requests are not drained on shutdown.
        runner = web.AppRunner(self._app, shutdown_timeout=0.0)
        await runner.setup()
        site = web.TCPSite(runner, host=self._host or None, port=self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("Listening. address=%s port=%s", self._host or "*", self._port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
