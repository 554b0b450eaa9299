"""Round-robin selection of the next live backend."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from lbgate.backends import Backend

_COUNTER_MODULUS = 2**64


class RoundRobin:
    """Hands out backends in turn, skipping those that are down.

    The counter is advanced under a lock so concurrent callers each get
    their own turn. When dead backends are skipped the counter jumps to
    the chosen position, so the following call continues after it.
    """

    def __init__(self, start_index: int = 0) -> None:
        self._index = start_index % _COUNTER_MODULUS
        self._lock = threading.Lock()

    def _advance(self, count: int) -> int:
        with self._lock:
            self._index = (self._index + 1) % _COUNTER_MODULUS
            return self._index % count

    def next_backend(self, backends: Sequence[Backend]) -> Backend | None:
        """Return the next live backend, or None when none is alive."""
        count = len(backends)
        if count == 0:
            return None
        start = self._advance(count)
        for offset in range(count):
            position = (start + offset) % count
            backend = backends[position]
            if backend.alive:
                if offset:
                    with self._lock:
                        self._index = position
                return backend
        return None