"""Per-client rate limiting with token buckets kept in a shared store.

Bucket state lives under ``bucket:<ip>`` and per-client overrides under
``config:<ip>``. The bucket arithmetic is done by Lua scripts run
atomically by the store. The scripts are supplied by the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time

from lbgate.config import LimiterConfig
from lbgate.repository import RateLimiterRepository

BUCKET_PREFIX = "bucket:"
CONFIG_PREFIX = "config:"

log = logging.getLogger(__name__)


def _is_one(result: object) -> bool:
    return isinstance(result, int) and not isinstance(result, bool) and result == 1


class TokenBucket:
    """Token-bucket limiter keyed by client IP.

    ``allow_script`` decides whether a request may pass and takes a token;
    ``refill_script`` tops up one bucket. Start :meth:`refill_loop` as a
    task to keep the buckets filled.
    """

    def __init__(
        self,
        repository: RateLimiterRepository,
        config: LimiterConfig,
        allow_script: str,
        refill_script: str,
    ) -> None:
        self._repository = repository
        self._allow_script = allow_script
        self._refill_script = refill_script
        self.default_capacity = config.capacity
        self.default_rate = config.rate_per_sec
        self.ttl = config.ttl

    async def allow(self, ip: str) -> bool:
        """Take a token for ``ip``; return True if the request may pass.

        Any failure of the store denies the request.
        """
        keys = [BUCKET_PREFIX + ip, CONFIG_PREFIX + ip]
        now = int(time.time())
        try:
            result = await self._repository.eval(
                self._allow_script,
                keys,
                now,
                self.ttl,
                self.default_capacity,
                self.default_rate,
            )
        except Exception as exc:  # the store may fail in any way; deny then
            log.warning("[RATE-LIMITER] allow errors: %s", exc)
            return False
        return _is_one(result)

    async def refill(self) -> None:
        """Top up every bucket currently in the store."""
        try:
            state_keys = await self._repository.keys()
        except Exception as exc:
            log.warning("[RATE-LIMITER] %s", exc)
            return

        if not state_keys:
            return

        now = int(time.time())
        for state_key in state_keys:
            config_key = CONFIG_PREFIX + state_key.split(":")[1]
            try:
                await self._repository.eval(
                    self._refill_script, [state_key, config_key], now, self.ttl
                )
            except Exception as exc:
                log.warning("[RATE-LIMITER] Refill %s errors: %s", state_key, exc)

    async def refill_loop(self, refill_seconds: float) -> None:
        """Refill all buckets every ``refill_seconds`` until cancelled."""
        if refill_seconds <= 0:
            raise ValueError("refill interval must be positive")
        try:
            while True:
                await asyncio.sleep(refill_seconds)
                log.info("[RATE-LIMITER] Starting refill bucket...")
                await self.refill()
                log.info("[RATE-LIMITER] Refill bucket completed")
        except asyncio.CancelledError:
            log.info("[RATE-LIMITER] Refill loop stopped")
            raise