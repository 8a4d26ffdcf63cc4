import asyncio
import json
from typing import Any, Callable, Optional

import pytest

from treadmill_sync.errors import TransportError
from treadmill_sync.protocol import CommandType
from treadmill_sync.telemetry_state import TelemetryState


class FakeConnection:
    """In-memory transport driven explicitly by the test."""

    def __init__(self, address: str, listener: Any) -> None:
        self.address = address
        self.listener = listener
        self.sent: list[dict[str, Any]] = []
        self.started = False
        self.close_calls = 0
        self.fail_sends = False
        self.close_delay = 0.0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self.started = True

    async def send(self, text: str) -> None:
        if self.fail_sends:
            raise TransportError("socket went away")
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self._closed = True

    async def open(self) -> None:
        await self.listener.on_transport_open(self)

    def receive(self, raw: str) -> None:
        self.listener.on_transport_frame(self, raw)

    def fail(self, error: Optional[Exception] = None) -> None:
        self.listener.on_transport_error(self, error or TransportError("boom"))

    def drop(self, code: Optional[int] = 1006) -> None:
        self._closed = True
        self.listener.on_transport_close(self, code)

    @property
    def sent_types(self) -> list[str]:
        return [message["type"] for message in self.sent]


class FakeConnectionFactory:
    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []

    def __call__(self, address: str, listener: Any) -> FakeConnection:
        connection = FakeConnection(address, listener)
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class FakeLink:
    """Stands in for LinkManager when exercising scenario loops."""

    def __init__(
        self,
        telemetry: Optional[TelemetryState] = None,
        *,
        connected: bool = True,
    ) -> None:
        self.telemetry = telemetry or TelemetryState()
        self.is_connected = connected
        self.sent: list[tuple[str, Optional[float]]] = []

    async def send(self, command: Any, value: Optional[float] = None) -> bool:
        name = command.value if isinstance(command, CommandType) else str(command)
        self.sent.append((name, value))
        return True


@pytest.fixture
def connection_factory() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def make_link() -> Callable[..., FakeLink]:
    return FakeLink
