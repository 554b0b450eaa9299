"""A trivial HTTP backend for trying out the balancer and the limiter."""

from __future__ import annotations

import logging
import os

from aiohttp import web

log = logging.getLogger(__name__)


def make_app(port) -> web.Application:
    """Build an application that greets with its port on every path."""
    greeting = f"Hello from backend on port {port}\n"

    async def hello(request: web.Request) -> web.Response:
        return web.Response(text=greeting)

    application = web.Application()
    application.router.add_route("*", "/{tail:.*}", hello)
    return application


def main(argv=None) -> int:
    """Serve on the port named by the PORT environment variable."""
    logging.basicConfig(level=logging.INFO)
    port = os.environ.get("PORT", "")
    if not port.isdigit():
        log.critical("PORT is required")
        return 1
    log.info("Backend is running on port %s", port)
    web.run_app(make_app(port), port=int(port), print=None)
    return 0