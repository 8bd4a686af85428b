from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer


@pytest_asyncio.fixture
async def make_client() -> AsyncIterator[Callable]:
    """Start an in-process server for an app and hand back a client to it."""
    clients: list[TestClient] = []

    async def _make(app: web.Application) -> TestClient:
        client = TestClient(TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    try:
        yield _make
    finally:
        for client in clients:
            await client.close()
