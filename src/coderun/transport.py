"""
Transport connection to the job server.

One WebSocket per session run, bound at handshake time to a session id and an
access token (query parameters). open() never blocks: readiness, frames and
failure arrive through a ConnectionListener. close() detaches the listener
synchronously, so nothing the socket delivers afterwards reaches the session,
then tears the socket down in the background.

There is no reconnect. A dropped connection is reported once through
on_closed and the caller decides whether to connect() again.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Protocol, runtime_checkable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from coderun import constants
from coderun._logging import get_logger
from coderun.exceptions import ConnectionClosedError

logger = get_logger(__name__)


def build_connect_url(base_url: str, session_id: str, token: str) -> str:
    """Append session id and token to the server URL.

    Other query parameters on base_url are kept; stale sessionId/token
    parameters are replaced.
    """
    parts = urlsplit(base_url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in (constants.SESSION_ID_PARAM, constants.TOKEN_PARAM)
    ]
    query.append((constants.SESSION_ID_PARAM, session_id))
    query.append((constants.TOKEN_PARAM, token))
    return urlunsplit(parts._replace(query=urlencode(query)))


@runtime_checkable
class ConnectionListener(Protocol):
    """Receives connection lifecycle and inbound frames, in order."""

    def on_open(self, epoch: int) -> None:
        """Connection reported open."""
        ...

    def on_frame(self, epoch: int, frame: str | bytes) -> None:
        """One inbound frame, undecoded."""
        ...

    def on_closed(self, epoch: int, reason: str, code: int | None, established: bool) -> None:
        """Connection failed to establish (established=False) or dropped.

        Not called after close(): a caller-initiated close is silent.
        """
        ...


@runtime_checkable
class Connection(Protocol):
    """Duplex frame connection owned by exactly one session.

    Structural typing so tests can drive a session with an in-memory fake.
    """

    epoch: int

    def open(self) -> None:
        """Start connecting. Returns immediately."""
        ...

    def transmit(self, frame: str) -> None:
        """Queue a frame for sending. Frames go out in call order."""
        ...

    def close(self) -> None:
        """Detach the listener and start teardown. Idempotent."""
        ...

    async def wait_closed(self) -> None:
        """Wait until the underlying socket is fully torn down."""
        ...


ConnectionFactory = Callable[[str, int, ConnectionListener], Connection]
"""(url, epoch, listener) -> unopened Connection."""


class WebSocketConnection:
    """
    WebSocket connection to the job server (websockets asyncio client).

    Queueing:
    - Outbound frames go through an unbounded FIFO drained by one write
      worker, so transmit() stays synchronous and order-preserving
    - Inbound frames are handed to the listener from the read loop, one at a
      time, in receipt order

    Teardown:
    - close() sets the listener to None first; every callback re-checks it
    - The connection task is cancelled; its finally block sends the close
      frame (bounded by close_timeout)
    """

    def __init__(
        self,
        url: str,
        listener: ConnectionListener,
        *,
        epoch: int = 0,
        open_timeout: float = constants.DEFAULT_OPEN_TIMEOUT_SECONDS,
        close_timeout: float = constants.DEFAULT_CLOSE_TIMEOUT_SECONDS,
        max_frame_bytes: int = constants.DEFAULT_MAX_FRAME_BYTES,
    ):
        """
        Args:
            url: Full ws:// or wss:// URL including handshake parameters
            listener: Receiver for open/frame/closed notifications
            epoch: Session-assigned connection number, echoed in every callback
            open_timeout: Handshake deadline in seconds
            close_timeout: Closing handshake deadline in seconds
            max_frame_bytes: Largest inbound frame accepted
        """
        self.url = url
        self.epoch = epoch
        self._listener: ConnectionListener | None = listener
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._max_frame_bytes = max_frame_bytes
        self._write_queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._ws: ClientConnection | None = None

    def open(self) -> None:
        """Start the connection task. Requires a running event loop."""
        if self._task is not None or self._listener is None:
            return
        self._task = asyncio.create_task(self._run(), name=f"coderun-connection-{self.epoch}")

    def transmit(self, frame: str) -> None:
        """Queue a frame for the write worker.

        Raises:
            ConnectionClosedError: close() was already called
        """
        if self._listener is None:
            raise ConnectionClosedError("Connection closed", context={"epoch": self.epoch})
        self._write_queue.put_nowait(frame)

    def close(self) -> None:
        """Detach the listener synchronously and cancel the connection task."""
        if self._listener is None:
            return
        self._listener = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("Connection closed by client", extra={"epoch": self.epoch})

    async def wait_closed(self) -> None:
        """Wait for the connection task (and socket close) to finish."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _run(self) -> None:
        """Connect, then pump inbound frames until the socket ends."""
        try:
            ws = await connect(
                self.url,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
                max_size=self._max_frame_bytes,
            )
        except InvalidStatus as e:
            self._notify_closed(f"handshake rejected: HTTP {e.response.status_code}", None, established=False)
            return
        except (OSError, TimeoutError, WebSocketException) as e:
            self._notify_closed(f"{type(e).__name__}: {e}", None, established=False)
            return

        self._ws = ws
        writer = asyncio.create_task(self._write_worker(ws), name=f"coderun-writer-{self.epoch}")
        code: int | None = None
        reason = ""
        try:
            self._notify_open()
            async for message in ws:
                self._notify_frame(message)
            code, reason = ws.close_code, ws.close_reason or ""
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            reason = e.rcvd.reason if e.rcvd is not None else ""
        finally:
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
            await ws.close()
            self._ws = None

        self._notify_closed(reason or "connection closed by server", code, established=True)

    async def _write_worker(self, ws: ClientConnection) -> None:
        """Send queued frames one at a time, in order, until the socket closes."""
        while True:
            frame = await self._write_queue.get()
            try:
                await ws.send(frame)
            except ConnectionClosed:
                logger.debug(
                    "Write worker stopped: connection closed",
                    extra={"epoch": self.epoch, "unsent": self._write_queue.qsize() + 1},
                )
                return
            finally:
                self._write_queue.task_done()

    def _notify_open(self) -> None:
        listener = self._listener
        if listener is None:
            return
        logger.info("Connection open", extra={"epoch": self.epoch})
        listener.on_open(self.epoch)

    def _notify_frame(self, frame: str | bytes) -> None:
        listener = self._listener
        if listener is None:
            return
        listener.on_frame(self.epoch, frame)

    def _notify_closed(self, reason: str, code: int | None, *, established: bool) -> None:
        listener = self._listener
        if listener is None:
            return
        self._listener = None
        logger.warning(
            "Connection lost" if established else "Connection failed",
            extra={"epoch": self.epoch, "reason": reason, "code": code},
        )
        listener.on_closed(self.epoch, reason, code, established)


def websocket_connection_factory(
    *,
    open_timeout: float = constants.DEFAULT_OPEN_TIMEOUT_SECONDS,
    close_timeout: float = constants.DEFAULT_CLOSE_TIMEOUT_SECONDS,
    max_frame_bytes: int = constants.DEFAULT_MAX_FRAME_BYTES,
) -> ConnectionFactory:
    """Build a ConnectionFactory producing WebSocketConnection instances."""

    def factory(url: str, epoch: int, listener: ConnectionListener) -> Connection:
        return WebSocketConnection(
            url,
            listener,
            epoch=epoch,
            open_timeout=open_timeout,
            close_timeout=close_timeout,
            max_frame_bytes=max_frame_bytes,
        )

    return factory
