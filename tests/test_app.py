import asyncio
import socket

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from lbgate import app
from lbgate.config import (
    BalancerConfig,
    Config,
    ConfigError,
    HTTPConfig,
    LimiterConfig,
)
from lbgate.repository import RedisConnectionError, Repository


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeBucketStore:
    """In-memory stand-in for the Redis limiter store."""

    def __init__(self):
        self.buckets = {}

    async def eval(self, script, keys, *args):
        key = keys[0]
        if len(args) == 4:
            _, _, capacity, _ = args
            tokens = self.buckets.setdefault(key, capacity)
            if tokens > 0:
                self.buckets[key] = tokens - 1
                return 1
            return 0
        return 1

    async def keys(self):
        return list(self.buckets)


def make_backend_app(number):
    async def hello(request):
        return web.Response(text=f"Hello from backend {number}")

    application = web.Application()
    application.router.add_get("/", hello)
    return application


async def wait_for_ready(session, url):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + 5
    while loop.time() < deadline:
        try:
            async with session.get(url) as response:
                if response.status == 200:
                    return True
        except aiohttp.ClientError:
            pass
        await asyncio.sleep(0.05)
    return False


@pytest.mark.asyncio
async def test_app_performance():
    backends = [TestServer(make_backend_app(i)) for i in range(3)]
    for backend in backends:
        await backend.start_server()

    port = free_port()
    config = Config(
        http=HTTPConfig(port=str(port)),
        balancer=BalancerConfig(
            backends=[str(backend.make_url("")) for backend in backends],
            health_check_time=60,
        ),
        limiter=LimiterConfig(capacity=5, rate_per_sec=1, ttl=60, refill_time=60),
    )
    shutdown = asyncio.Event()
    task = asyncio.create_task(
        app._serve(config, Repository(rate_limiter=FakeBucketStore()), shutdown)
    )
    url = f"http://127.0.0.1:{port}/"
    try:
        async with aiohttp.ClientSession() as session:
            assert await wait_for_ready(session, url)

            statuses = []
            bodies = []
            for _ in range(20):
                async with session.get(url) as response:
                    statuses.append(response.status)
                    bodies.append(await response.text())

            assert set(statuses) <= {200, 429}
            assert 200 in statuses
            assert 429 in statuses
            for status, body in zip(statuses, bodies):
                if status == 200:
                    assert body.startswith("Hello from backend")

            shutdown.set()
            await asyncio.wait_for(task, 5)

            with pytest.raises(aiohttp.ClientConnectionError):
                async with session.get(url):
                    pass
    finally:
        shutdown.set()
        if not task.done():
            task.cancel()
        for backend in backends:
            await backend.close()


@pytest.mark.asyncio
async def test_run_without_config_raises(tmp_path):
    with pytest.raises(ConfigError):
        await app.run(tmp_path / "missing")


@pytest.mark.asyncio
async def test_run_with_unreachable_redis_raises(tmp_path):
    port = free_port()
    (tmp_path / "config.yaml").write_text(
        f"redis:\n  host: 127.0.0.1\n  port: '{port}'\nhttp:\n  port: '0'\n",
        encoding="utf-8",
    )
    with pytest.raises(RedisConnectionError):
        await app.run(tmp_path)


def test_main_reports_config_error(tmp_path):
    assert app.main(["--config-dir", str(tmp_path / "missing")]) == 1