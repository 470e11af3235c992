"""
Shared fixtures for the relay test suite.

Unit tests drive ``RelayServer`` directly with ``FakeWebSocket`` objects;
end-to-end tests go through the real FastAPI app with ``TestClient``.
"""

import asyncio
import json
from typing import List, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from relay_server import RelayServer


class FakeWebSocket:
    """Records what the relay writes. Can be told to fail or hang on send."""

    def __init__(self, fail: bool = False, hang: bool = False):
        self.sent: List[dict] = []
        self.fail = fail
        self.hang = hang
        self.closed = False
        self.close_code: Optional[int] = None

    async def send_text(self, data: str):
        if self.fail:
            raise RuntimeError("connection reset by peer")
        if self.hang:
            await asyncio.Event().wait()
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000):
        self.closed = True
        self.close_code = code

    def of_type(self, message_type: str) -> List[dict]:
        return [m for m in self.sent if m["type"] == message_type]

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]


async def flush(*connections, rounds: int = 3):
    """Wait until the writer tasks have pushed everything queued so far."""
    # A failed send queues a userCount on other members, so settle a few times
    for _ in range(rounds):
        await asyncio.gather(*(connection.drained() for connection in connections))
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def relay():
    server = RelayServer(queue_size=16)
    yield server
    await server.shutdown()


@pytest.fixture
def open_connection(relay):
    def _open(**kwargs):
        return relay.open(FakeWebSocket(**kwargs))

    return _open


@pytest.fixture
def client():
    from app import app

    with TestClient(app) as test_client:
        yield test_client
