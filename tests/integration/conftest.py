from __future__ import annotations

import os

import httpx
import pytest_asyncio

os.environ.setdefault("STATS_BACKEND", "memory")

import apistats.main as main_module  # noqa: E402
from apistats.main import app  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def clean_state() -> None:
    await main_module.stats_store.reset()
    yield
    await main_module.stats_store.reset()


@pytest_asyncio.fixture
async def client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app, client=("192.168.1.100", 51234))
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
