"""Start-up and graceful shutdown of the load-balancing gateway."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from lbgate.config import Config, ConfigError, load_config
from lbgate.handler import Handler
from lbgate.repository import (
    RedisConnectionError,
    Repository,
    connect_redis,
    make_repository,
)
from lbgate.server import Server
from lbgate.services import build_services

DEFAULT_CONFIG_DIR = "configs"

log = logging.getLogger(__name__)


def _install_signal_handlers(event: asyncio.Event) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, event.set)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)
    return installed


async def _serve(config: Config, repository: Repository, shutdown: asyncio.Event) -> None:
    services = build_services(repository, config)
    server = Server(config.http, Handler(services))
    services.start()
    try:
        await server.start()
        log.info("[MAIN] Server with balancer build and run at : %s", config.http.port)
        await shutdown.wait()
        log.info("[MAIN] Shutdown initiated...")
    finally:
        await services.stop()
        await server.stop()
    log.info("[MAIN] Server gracefully stopped.")


async def run(config_dir=DEFAULT_CONFIG_DIR) -> None:
    """Load the configuration, connect to Redis and serve until SIGINT or SIGTERM.

    The limiter's Lua scripts are read from ``config_dir`` as well.
    """
    config = load_config(config_dir)
    client = await connect_redis(config.redis)

    shutdown = asyncio.Event()
    installed = _install_signal_handlers(shutdown)
    try:
        await _serve(config, make_repository(client), shutdown)
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await client.connection_pool.disconnect()


def main(argv=None) -> int:
    """Command-line entry point; returns the process exit status."""
    parser = argparse.ArgumentParser(
        prog="lbgate", description="Rate-limiting round-robin HTTP load balancer."
    )
    parser.add_argument(
        "--config-dir",
        default=DEFAULT_CONFIG_DIR,
        help="directory holding config.yaml and the limiter scripts",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        asyncio.run(run(args.config_dir))
    except ConfigError as exc:
        log.critical("[MAIN] errors initialising config: %s", exc)
        return 1
    except RedisConnectionError as exc:
        log.critical("[MAIN] redis client creation error: %s", exc)
        return 1
    except KeyboardInterrupt:
        log.info("[MAIN] Server stopped.")
    return 0