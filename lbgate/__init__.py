"""HTTP load balancer with round-robin routing, health checks and Redis-backed per-IP rate limiting."""

__version__ = "0.1.0"

__all__ = ["__version__"]