"""HTTP entry point: per-IP rate limiting, then routing through the balancer."""

from __future__ import annotations

import ipaddress
import json
import logging

from aiohttp import web

from lbgate.services import Services

log = logging.getLogger(__name__)

_JSON_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


def client_ip(remote_addr: str) -> str:
    """Return the host of a "host:port" or "[host]:port" address; ValueError if malformed."""

    def fail(reason: str) -> ValueError:
        return ValueError(f"address {remote_addr}: {reason}")

    colon = remote_addr.rfind(":")
    if colon < 0:
        raise fail("missing port in address")
    if remote_addr.startswith("["):
        end = remote_addr.find("]")
        if end < 0:
            raise fail("missing ']' in address")
        if end + 1 != colon:
            too_many = end + 1 < len(remote_addr) and remote_addr[end + 1] == ":"
            raise fail("too many colons in address" if too_many else "missing port in address")
        host, open_from, close_from = remote_addr[1:end], 1, end + 1
    else:
        host, open_from, close_from = remote_addr[:colon], 0, 0
        if ":" in host:
            raise fail("too many colons in address")
    if "[" in remote_addr[open_from:]:
        raise fail("unexpected '[' in address")
    if "]" in remote_addr[close_from:]:
        raise fail("unexpected ']' in address")
    return host


def json_response(status: int, message: str) -> web.Response:
    """Build a JSON error reply carrying the status code and a message."""
    text = json.dumps({"message": message, "status": status}, ensure_ascii=False, separators=(",", ":"))
    for char, escaped in _JSON_ESCAPES.items():
        text = text.replace(char, escaped)
    return web.Response(status=status, body=(text + "\n").encode("utf-8"),
                        headers={"Content-Type": "application/json"})


def _remote_addr(request: web.BaseRequest) -> str:
    transport = request.transport
    peer = transport.get_extra_info("peername") if transport is not None else None
    if not isinstance(peer, (tuple, list)) or len(peer) < 2:
        return ""
    host, port = str(peer[0]), peer[1]
    try:
        mapped = getattr(ipaddress.ip_address(host), "ipv4_mapped", None)
    except ValueError:
        mapped = None
    if mapped is not None:
        host = str(mapped)
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class Handler:
    """Request handler: rejects clients over their limit, routes the rest."""

    def __init__(self, services: Services) -> None:
        self.services = services

    async def __call__(self, request: web.BaseRequest) -> web.StreamResponse:
        try:
            ip = client_ip(_remote_addr(request))
        except ValueError as exc:
            log.error("[HANDLER] Error parsing remoteAddr: %s", exc)
            return json_response(500, "internal server error")

        if not await self.services.rate_limiter.allow(ip):
            log.warning("[RATE - LIMITER] Too many request from client: %s", ip)
            return json_response(429, "Too many request from your IP")

        return await self.services.load_balancer.route(request)