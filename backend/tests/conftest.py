"""Shared test fixtures and configuration for backend tests."""
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from controverse.chat.coordinator import BroadcastCoordinator
from controverse.chat.rate_limiter import RateLimiter
from controverse.chat.registry import ParticipantRegistry
from controverse.chat.transport import EventTransport
from controverse.config import AppConfig, ChatSettings, ServerSettings
from controverse.main import create_app


class RecordingTransport(EventTransport):
    """In-memory transport: every connection gets an inbox of (event, data)."""

    def __init__(self) -> None:
        self.open: List[str] = []
        self.inbox: Dict[str, List[Tuple[str, Any]]] = defaultdict(list)

    def open_connection(self, connection_id: str) -> None:
        self.open.append(connection_id)

    def close_connection(self, connection_id: str) -> None:
        if connection_id in self.open:
            self.open.remove(connection_id)

    async def emit(self, connection_id: str, event: str, data: Any = None) -> None:
        if connection_id in self.open:
            self.inbox[connection_id].append((event, data))

    async def broadcast(
        self, event: str, data: Any = None, exclude: Optional[str] = None
    ) -> None:
        for cid in self.open:
            if cid != exclude:
                self.inbox[cid].append((event, data))

    def events(self, connection_id: str, name: str) -> List[Any]:
        """Payloads of every ``name`` event delivered to a connection."""
        return [data for event, data in self.inbox[connection_id] if event == name]

    def clear(self) -> None:
        self.inbox.clear()


class ManualScheduler:
    """Collects deferred callbacks so tests decide when decay happens."""

    def __init__(self) -> None:
        self.pending: List[Tuple[float, Callable[[], None]]] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> int:
        self.pending.append((delay, callback))
        return len(self.pending)

    def fire(self, count: Optional[int] = None) -> int:
        """Run the oldest ``count`` callbacks (all by default)."""
        count = len(self.pending) if count is None else count
        due, self.pending = self.pending[:count], self.pending[count:]
        for _, callback in due:
            callback()
        return len(due)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def coordinator(transport, scheduler) -> BroadcastCoordinator:
    """Coordinator wired to the recording transport and manual scheduler."""
    settings = ChatSettings()
    registry = ParticipantRegistry()
    limiter = RateLimiter(
        registry,
        threshold=settings.rate_limit_threshold,
        decay_seconds=settings.rate_limit_decay_seconds,
        scheduler=scheduler,
    )
    return BroadcastCoordinator(
        transport, settings, registry=registry, rate_limiter=limiter
    )


@pytest.fixture
def connect(coordinator, transport):
    """Open a connection on the recording transport and register it."""
    async def _connect(connection_id: str):
        transport.open_connection(connection_id)
        await coordinator.handle_connect(connection_id)
        return coordinator.registry.get(connection_id)

    return _connect


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        server=ServerSettings(static_dir=str(tmp_path / "no-static")),
    )


@pytest.fixture
def api_client(app_config):
    """Provide a TestClient for a fresh app with isolated chat state.

    Used as a context manager so the lifespan runs and every WebSocket in
    a test shares one event loop.
    """
    with TestClient(create_app(app_config)) as client:
        yield client
