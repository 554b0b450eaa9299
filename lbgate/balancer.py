"""Reverse-proxy load balancer with health checks over a pool of backends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlsplit

import aiohttp
from aiohttp import web

from lbgate.backends import Backend
from lbgate.config import BalancerConfig
from lbgate.roundrobin import RoundRobin

log = logging.getLogger(__name__)

_START_INDEX = 1
_HOP_HEADERS = frozenset({
    "connection", "proxy-connection", "keep-alive", "proxy-authenticate",
    "proxy-authorization", "te", "trailer", "transfer-encoding", "upgrade",
})
_PROXY_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def _text_error(message: str, status: int) -> web.Response:
    return web.Response(
        status=status,
        text=message + "\n",
        content_type="text/plain",
        charset="utf-8",
        headers={"X-Content-Type-Options": "nosniff"},
    )


def _end_to_end(headers, *extra: str) -> list[tuple[str, str]]:
    dropped = _HOP_HEADERS | {name.lower() for name in extra}
    for value in headers.getall("Connection", []):
        dropped |= {token.strip().lower() for token in value.split(",")}
    return [(name, value) for name, value in headers.items() if name.lower() not in dropped]


def _target_url(backend_url: str, raw_path: str) -> str:
    target = urlsplit(backend_url)
    path, _, query = raw_path.partition("?")
    base = target.path
    if base.endswith("/") and path.startswith("/"):
        path = path[1:]
    elif not base.endswith("/") and not path.startswith("/"):
        path = "/" + path
    query = "&".join(part for part in (target.query, query) if part)
    url = f"{target.scheme}://{target.netloc}{base}{path}"
    return f"{url}?{query}" if query else url


def _valid_url(address: str) -> bool:
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in address):
        return False
    try:
        urlsplit(address).port
    except ValueError:
        return False
    return True


class LoadBalancer:
    """Forwards requests to live backends chosen by a strategy.

    Addresses that cannot be parsed are left out of the pool. Without an
    injected ``session`` a client session is opened per request and per
    health check.
    """

    def __init__(self, config: BalancerConfig, strategy=None, session: aiohttp.ClientSession | None = None) -> None:
        self.backends: list[Backend] = []
        for address in config.backends:
            if _valid_url(address):
                self.backends.append(Backend(address))
            else:
                log.warning("[BALANCER] Error parsing backend url - %s", address)
        self.strategy = strategy or RoundRobin(_START_INDEX)
        self._session = session

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession(auto_decompress=False) as session:
            yield session

    def alive_backends(self) -> list[Backend]:
        """Return the backends currently marked alive, in pool order."""
        return [backend for backend in self.backends if backend.alive]

    async def route(self, request: web.Request) -> web.StreamResponse:
        """Proxy ``request`` to the next live backend; 503 when none can take it."""
        alive = self.alive_backends()
        backend = self.strategy.next_backend(alive) if alive else None
        if backend is None:
            log.warning("[BALANCER] No alive backends available")
            return _text_error("Service unavailable: no alive backend", 503)

        log.info("[BALANCER] Forwarding request to: %s", backend.url)
        try:
            return await self._forward(backend, request)
        except _PROXY_ERRORS as exc:
            backend.alive = False
            log.warning("[BALANCER - ErrorHandler] Marked backend %s as DOWN: %s", backend.url, exc)
            return _text_error("Backend unavailable", 503)

    async def _forward(self, backend: Backend, request: web.Request) -> web.Response:
        headers = _end_to_end(request.headers, "X-Forwarded-For")
        if request.remote:
            prior = request.headers.getall("X-Forwarded-For", [])
            headers.append(("X-Forwarded-For", ", ".join([*prior, request.remote])))
        skip = () if "User-Agent" in request.headers else ("User-Agent",)
        body = await request.read()

        async with self._client() as session:
            async with session.request(
                request.method,
                _target_url(backend.url, request.raw_path),
                headers=headers,
                data=body or None,
                skip_auto_headers=skip,
                allow_redirects=False,
            ) as upstream:
                payload = await upstream.read()
                reply_headers = _end_to_end(upstream.headers, "Content-Length")
                return web.Response(status=upstream.status, body=payload, headers=reply_headers)

    async def health_check(self) -> None:
        """Probe every backend; a 200 answer marks it alive, anything else down."""
        async with self._client() as session:
            for backend in self.backends:
                status, error = 0, None
                try:
                    async with session.get(backend.url) as response:
                        status = response.status
                except _PROXY_ERRORS as exc:
                    error = exc
                backend.alive = error is None and status == 200
                if not backend.alive:
                    log.warning("[BALANCER - HealthCheckError] %s - %d : (%s)", backend.url, status, error)

    async def health_check_loop(self, interval_seconds: float) -> None:
        """Run :meth:`health_check` every ``interval_seconds`` until cancelled."""
        if interval_seconds <= 0:
            raise ValueError("health check interval must be positive")
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                log.info("[BALANCER] Starting health check...")
                await self.health_check()
                log.info("[BALANCER] Health check completed")
        except asyncio.CancelledError:
            log.info("[BALANCER] Health check loop stopped")
            raise