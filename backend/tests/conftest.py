"""Shared test fixtures and configuration for backend tests."""
from typing import Any, List

import pytest
from fastapi.testclient import TestClient

from messaging.config import AppConfig, reset_config
from messaging.main import create_app
from messaging.store.service import MessageStore


class FakeWebSocket:
    """Stand-in for a FastAPI WebSocket that records every frame sent to it."""

    def __init__(self, fail_sends: bool = False) -> None:
        self.sent: List[Any] = []
        self.accepted = False
        self.closed_with = None
        self.fail_sends = fail_sends

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def frames(self, frame_type: str) -> List[dict]:
        return [frame for frame in self.sent if frame.get("type") == frame_type]


class FakeClock:
    """Manually advanced monotonic clock for registry expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_test_config(**overrides: Any) -> AppConfig:
    """In-process config: memory registry, in-memory DuckDB, no heartbeat."""
    data = {
        "registry": {"backend": "memory"},
        "store": {"db_path": ":memory:"},
        "heartbeat": {"interval_seconds": 0},
        "secrets": {"jwt": {"secret_key": "test-secret"}},
    }
    data.update(overrides)
    return AppConfig(**data)


@pytest.fixture
def test_config() -> AppConfig:
    return make_test_config()


@pytest.fixture
def memory_store():
    """A fresh in-memory MessageStore installed as the singleton."""
    MessageStore.reset_instance()
    store = MessageStore.get_instance(db_path=":memory:")
    yield store
    MessageStore.reset_instance()


@pytest.fixture
def api_client(test_config):
    """Provide a TestClient with the lifespan running on the in-memory stack."""
    MessageStore.reset_instance()
    app = create_app(test_config)
    with TestClient(app) as client:
        yield client
    MessageStore.reset_instance()
    reset_config()
