"""The front HTTP server that feeds requests to a handler."""

from __future__ import annotations

import socket
from collections.abc import Awaitable, Callable

from aiohttp import web

from lbgate.config import HTTPConfig

RequestHandler = Callable[[web.BaseRequest], Awaitable[web.StreamResponse]]


class Server:
    """HTTP server listening on every interface at the configured port."""

    def __init__(self, config: HTTPConfig, handler: RequestHandler) -> None:
        self.config = config
        self.handler = handler
        self._runner: web.ServerRunner | None = None
        self._socket: socket.socket | None = None

    @property
    def port(self) -> int:
        """The port actually bound; useful when the configured port is 0."""
        if self._socket is None:
            raise RuntimeError("server is not running")
        return self._socket.getsockname()[1]

    async def start(self) -> None:
        """Bind the port and begin serving; returns once listening."""
        if self._runner is not None:
            raise RuntimeError("server already started")
        address = ("", int(self.config.port or 0))
        if socket.has_dualstack_ipv6():
            sock = socket.create_server(address, family=socket.AF_INET6, dualstack_ipv6=True)
        else:
            sock = socket.create_server(address)
        runner = web.ServerRunner(web.Server(self.handler))
        try:
            await runner.setup()
            await web.SockSite(runner, sock).start()
        except BaseException:
            await runner.cleanup()
            sock.close()
            raise
        self._runner, self._socket = runner, sock

    async def stop(self) -> None:
        """Stop accepting connections and finish the ones in flight."""
        runner, sock = self._runner, self._socket
        self._runner = self._socket = None
        if runner is not None:
            await runner.cleanup()
        if sock is not None:
            sock.close()