"""Backend nodes that the load balancer forwards requests to."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class Backend:
    """A proxy target identified by its base URL, with a liveness flag.

    A new backend is considered alive until a health check or a failed
    proxied request marks it down.
    """

    url: str
    alive: bool = True

    def __str__(self) -> str:
        return self.url