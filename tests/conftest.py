"""Shared pytest fixtures for coderun tests.

FakeConnection stands in for the WebSocket: tests decide when it opens, what
it delivers, and when it drops. It deliberately keeps delivering after
close() so the session's own stale-connection guard is what gets tested.
"""

import asyncio
import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest

from coderun.config import ClientConfig
from coderun.exceptions import ConnectionClosedError
from coderun.protocol import SessionEvent
from coderun.session import Session
from coderun.transport import ConnectionListener

Responder = Callable[[dict[str, Any]], list[dict[str, Any]]]


def frame(**fields: Any) -> str:
    """Build an inbound JSON frame."""
    return json.dumps(fields)


class FakeConnection:
    """In-memory Connection.

    Args:
        auto_open: Report open on the next loop iteration after open()
        responder: Maps each transmitted command to frames the "server" sends
            back, delivered in order on later loop iterations
    """

    def __init__(
        self,
        url: str,
        epoch: int,
        listener: ConnectionListener,
        *,
        auto_open: bool = False,
        responder: Responder | None = None,
    ) -> None:
        self.url = url
        self.epoch = epoch
        self.listener = listener
        self.auto_open = auto_open
        self.responder = responder
        self.sent: list[str] = []
        self.open_called = False
        self.closed = False
        self.wait_closed_calls = 0

    @property
    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(f) for f in self.sent]

    # Connection protocol

    def open(self) -> None:
        self.open_called = True
        if self.auto_open:
            asyncio.get_running_loop().call_soon(self.server_open)

    def transmit(self, frame: str) -> None:
        if self.closed:
            raise ConnectionClosedError("fake closed")
        self.sent.append(frame)
        if self.responder is not None:
            loop = asyncio.get_running_loop()
            for reply in self.responder(json.loads(frame)):
                loop.call_soon(self.deliver, json.dumps(reply))

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        self.wait_closed_calls += 1

    # Test drivers (what the socket would report)

    def server_open(self) -> None:
        self.listener.on_open(self.epoch)

    def deliver(self, data: str | bytes) -> None:
        self.listener.on_frame(self.epoch, data)

    def drop(self, reason: str = "gone", code: int | None = 1006, *, established: bool = True) -> None:
        self.listener.on_closed(self.epoch, reason, code, established)


class FakeTransport:
    """ConnectionFactory that records every FakeConnection it creates."""

    def __init__(self, *, auto_open: bool = False, responder: Responder | None = None) -> None:
        self.auto_open = auto_open
        self.responder = responder
        self.connections: list[FakeConnection] = []

    def __call__(self, url: str, epoch: int, listener: ConnectionListener) -> FakeConnection:
        conn = FakeConnection(url, epoch, listener, auto_open=self.auto_open, responder=self.responder)
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(url="ws://jobs.test/ws", token="t0ken")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
async def session(config: ClientConfig, transport: FakeTransport) -> AsyncGenerator[Session]:
    s = Session(config, connection_factory=transport)
    yield s
    await s.aclose()


@pytest.fixture
def events() -> list[SessionEvent]:
    return []
