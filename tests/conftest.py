"""
Shared fixtures: an in-memory transport, a controllable clock, a recording
server connection and a loopback wiring a client data source to a server
data source without sockets.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from starwire.client.data_source import ClientDataSource
from starwire.client.transport import Transport
from starwire.config import ClientConfig
from starwire.protocol.messages import WireMessage, encode
from starwire.server.data_source import Connection, ServerDataSource


class FakeTransport(Transport):
    """Records outbound frames as decoded JSON; drops them while closed"""

    def __init__(self):
        super().__init__()
        self.sent: List[Dict[str, Any]] = []
        self.is_open = False
        self.closed = False

    def send(self, data: str) -> None:
        if self.is_open:
            self.sent.append(json.loads(data))

    def close(self) -> None:
        self.closed = True
        self.is_open = False

    # Test controls

    def open(self) -> None:
        self.is_open = True
        self._emit_open()

    def drop(self) -> None:
        self.is_open = False
        self._emit_close()

    def fail(self, error: BaseException) -> None:
        self.is_open = False
        self._emit_error(error)

    def receive(self, message: Dict[str, Any]) -> None:
        self._emit_message(json.dumps(message))

    def sent_of(self, tag: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message.get("$") == tag]


class FakeClock:
    """Monotonic clock advanced by hand"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingConnection(Connection):
    """Server connection that keeps every sent message as decoded JSON"""

    def __init__(self, connection_id: Optional[str] = None):
        super().__init__(connection_id)
        self.messages: List[Dict[str, Any]] = []

    def send(self, message: WireMessage) -> None:
        if not self.closed:
            self.messages.append(json.loads(encode(message)))

    def of(self, tag: str) -> List[Dict[str, Any]]:
        return [message for message in self.messages if message.get("$") == tag]


class LoopbackTransport(Transport):
    """
    Client transport connected directly to a ServerDataSource.

    Frames in both directions go through the event loop, so tests call
    ``flush()`` to let them arrive.
    """

    def __init__(self, server: ServerDataSource):
        super().__init__()
        self.server = server
        self.connection: Optional[Connection] = None
        self.sent: List[Dict[str, Any]] = []
        self._writer: Optional[asyncio.Task] = None
        self._tasks = set()

    def open(self) -> None:
        self.connection = self.server.connect()
        self._writer = asyncio.get_running_loop().create_task(self.connection.run_writer(self._deliver))
        self._emit_open()

    async def _deliver(self, data: str) -> None:
        self._emit_message(data)

    def send(self, data: str) -> None:
        if self.connection is None:
            return
        self.sent.append(json.loads(data))
        task = asyncio.get_running_loop().create_task(self.server.handle_message(self.connection, data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        if self.connection is not None:
            self.server.disconnect(self.connection)
            self.connection = None
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None

    def drop(self) -> None:
        self.close()
        self._emit_close()

    def sent_of(self, tag: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message.get("$") == tag]


async def flush(rounds: int = 10) -> None:
    """Let queued tasks and frames run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(transport, clock):
    return ClientDataSource(transport, ClientConfig(), clock=clock)


@pytest.fixture
def server():
    return ServerDataSource()
