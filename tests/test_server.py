import aiohttp
import pytest
from aiohttp import web

from lbgate.config import HTTPConfig
from lbgate.server import Server


async def echo(request):
    return web.Response(text=f"{request.method} {request.path}")


@pytest.mark.asyncio
async def test_serves_requests_until_stopped():
    server = Server(HTTPConfig(port="0"), echo)
    await server.start()
    port = server.port
    assert port > 0

    async with aiohttp.ClientSession() as session:
        async with session.get(f"http://127.0.0.1:{port}/ping") as response:
            assert response.status == 200
            assert await response.text() == "GET /ping"

        await server.stop()

        with pytest.raises(aiohttp.ClientConnectionError):
            async with session.get(f"http://127.0.0.1:{port}/ping"):
                pass


@pytest.mark.asyncio
async def test_start_twice_raises():
    server = Server(HTTPConfig(port="0"), echo)
    await server.start()
    try:
        with pytest.raises(RuntimeError):
            await server.start()
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_invalid_port_raises():
    server = Server(HTTPConfig(port="abc"), echo)
    with pytest.raises(ValueError):
        await server.start()


@pytest.mark.asyncio
async def test_port_known_only_after_start():
    server = Server(HTTPConfig(port="0"), echo)
    with pytest.raises(RuntimeError):
        _ = server.port
    await server.start()
    try:
        assert server.port > 0
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_stop_without_start_leaves_server_usable():
    server = Server(HTTPConfig(port="0"), echo)
    await server.stop()
    with pytest.raises(RuntimeError):
        _ = server.port

    await server.start()
    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(f"http://127.0.0.1:{server.port}/x") as response:
                assert response.status == 200
                assert await response.text() == "POST /x"
    finally:
        await server.stop()