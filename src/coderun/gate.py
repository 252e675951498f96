"""Readiness gate: hold outbound frames until the connection opens.

One gate per connection. It starts CONNECTING, moves once to OPEN or
CLOSED, and never goes back. Frames submitted while CONNECTING wait in a
FIFO; on OPEN they are transmitted in submission order before any later
submission can be, on CLOSED every waiter fails with ConnectionClosedError.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import Callable
from enum import Enum

from coderun._logging import get_logger
from coderun.exceptions import ConnectionClosedError

logger = get_logger(__name__)


class GateState(str, Enum):
    """Readiness gate lifecycle."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ReadinessGate:
    """Single-resolution synchronization point in front of a connection's writer.

    `transmit` is called synchronously with each frame, in order. It must
    not await: ordering across the drain relies on the whole drain running
    inside one event-loop turn.

    Attributes:
        epoch: Connection epoch this gate belongs to (for diagnostics)
    """

    def __init__(self, transmit: Callable[[str], None], *, epoch: int = 0) -> None:
        self._transmit = transmit
        self.epoch = epoch
        self._state = GateState.CONNECTING
        self._pending: deque[tuple[str, asyncio.Future[None]]] = deque()
        self._close_reason: str = ""
        self._close_code: int | None = None
        self._established = False

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def pending_count(self) -> int:
        """Submissions waiting for the connection to open."""
        return len(self._pending)

    async def submit(self, frame: str, *, on_withdraw: Callable[[], None] | None = None) -> None:
        """Transmit `frame` now if open, otherwise wait for the gate to resolve.

        Args:
            frame: Encoded command
            on_withdraw: Called if the submitter is cancelled before `frame`
                was transmitted

        Raises:
            ConnectionClosedError: Gate was closed before, or while, waiting
        """
        if self._state is GateState.OPEN:
            self._transmit(frame)
            return
        if self._state is GateState.CLOSED:
            raise self._closed_error()

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending.append((frame, future))
        logger.debug(
            "Frame queued until connection opens",
            extra={"epoch": self.epoch, "pending": len(self._pending)},
        )
        try:
            await future
        except asyncio.CancelledError:
            # A future that already holds a result means the frame went out.
            if future.cancelled():
                with contextlib.suppress(ValueError):
                    self._pending.remove((frame, future))
                if on_withdraw is not None:
                    on_withdraw()
            raise

    def open(self) -> None:
        """Resolve the gate and drain queued frames in FIFO order. Idempotent."""
        if self._state is not GateState.CONNECTING:
            return
        self._state = GateState.OPEN
        drained = 0
        while self._pending:
            frame, future = self._pending.popleft()
            if future.done():
                # Submitter was cancelled while waiting; its frame is withdrawn.
                continue
            self._transmit(frame)
            future.set_result(None)
            drained += 1
        if drained:
            logger.debug("Drained queued frames", extra={"epoch": self.epoch, "count": drained})

    def close(self, reason: str = "connection closed", *, code: int | None = None) -> None:
        """Abandon the gate, failing queued submissions in FIFO order. Idempotent."""
        if self._state is GateState.CLOSED:
            return
        was_open = self._state is GateState.OPEN
        self._state = GateState.CLOSED
        self._close_reason = reason
        self._close_code = code
        self._established = was_open
        rejected = 0
        while self._pending:
            _, future = self._pending.popleft()
            if not future.done():
                future.set_exception(self._closed_error())
                rejected += 1
        if rejected:
            logger.debug(
                "Rejected queued frames on close",
                extra={"epoch": self.epoch, "count": rejected, "reason": reason},
            )

    def _closed_error(self) -> ConnectionClosedError:
        return ConnectionClosedError(
            f"Connection closed: {self._close_reason}",
            context={"epoch": self.epoch, "reason": self._close_reason},
            code=self._close_code,
            established=self._established,
        )
