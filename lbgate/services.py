"""The application's services: the rate limiter and the load balancer."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from aiohttp import web

from lbgate.balancer import LoadBalancer
from lbgate.config import Config, ConfigError
from lbgate.ratelimiter import TokenBucket
from lbgate.repository import Repository

ALLOW_SCRIPT = "allow_script.lua"
REFILL_SCRIPT = "refill_script.lua"


class RateLimiter(Protocol):
    async def allow(self, ip: str) -> bool: ...

    async def refill_loop(self, refill_seconds: float) -> None: ...


class Balancer(Protocol):
    async def route(self, request: web.BaseRequest) -> web.StreamResponse: ...

    async def health_check_loop(self, interval_seconds: float) -> None: ...


@dataclass
class Services:
    """The limiter and balancer, plus the intervals of their background loops."""

    rate_limiter: RateLimiter
    load_balancer: Balancer
    refill_interval: float = 0.0
    health_check_interval: float = 0.0
    _tasks: list[asyncio.Task] = field(default_factory=list, init=False, repr=False)

    def start(self) -> None:
        """Start the refill and health-check loops on the running event loop."""
        if self._tasks:
            raise RuntimeError("services already started")
        if self.refill_interval <= 0 or self.health_check_interval <= 0:
            raise ValueError("refill and health check intervals must be positive")
        self._tasks = [
            asyncio.create_task(self.rate_limiter.refill_loop(self.refill_interval)),
            asyncio.create_task(self.load_balancer.health_check_loop(self.health_check_interval)),
        ]

    async def stop(self) -> None:
        """Cancel the background loops and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def _read_script(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read limiter script {path}: {exc}") from exc


def build_services(repository: Repository, config: Config) -> Services:
    """Build the services; the limiter's Lua scripts come from the config directory."""
    directory = Path(config.directory)
    limiter = TokenBucket(
        repository.rate_limiter,
        config.limiter,
        _read_script(directory / ALLOW_SCRIPT),
        _read_script(directory / REFILL_SCRIPT),
    )
    return Services(
        rate_limiter=limiter,
        load_balancer=LoadBalancer(config.balancer),
        refill_interval=config.limiter.refill_time,
        health_check_interval=config.balancer.health_check_time,
    )