import pytest
from aiohttp.test_utils import TestClient, TestServer

from lbgate.demo_backend import main, make_app


@pytest.mark.asyncio
async def test_greets_with_port():
    async with TestClient(TestServer(make_app("8081"))) as client:
        response = await client.get("/")
        text = await response.text()
    assert response.status == 200
    assert text == "Hello from backend on port 8081\n"


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/anything", "/a/b/c", "/?q=1"])
async def test_every_path_answers(path):
    async with TestClient(TestServer(make_app("9000"))) as client:
        response = await client.get(path)
        text = await response.text()
    assert response.status == 200
    assert text == "Hello from backend on port 9000\n"


@pytest.mark.asyncio
async def test_other_methods_answer():
    async with TestClient(TestServer(make_app("9000"))) as client:
        response = await client.post("/", data=b"x")
        text = await response.text()
    assert text.startswith("Hello from backend on port 9000")


def test_main_requires_port(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    assert main([]) == 1


def test_main_rejects_non_numeric_port(monkeypatch):
    monkeypatch.setenv("PORT", "not-a-port")
    assert main([]) == 1