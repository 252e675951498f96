"""Session - client side of one browser-style "run" against the job server.

A Session owns at most one live connection. Every connect() supersedes the
previous one: its listener is detached synchronously, its readiness gate is
abandoned and any job it carried is dropped without an event. Frames then
flow transport -> codec -> job state machine -> on_event, in receipt order.

Example:
    ```python
    async with Session(ClientConfig.from_settings()) as session:
        session.connect(print)
        await session.send(StartJobCommand(language=Language.PYTHON, code="print(1)"))
        ...
    ```

Concurrency:
    Single event loop, no locks. Every mutation happens synchronously inside
    a callback or a send() call. The only suspension point is the readiness
    gate, so send() calls made before the connection opens go out in the
    order they were made.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Self, assert_never
from uuid import uuid4

from coderun._logging import get_logger
from coderun.codec import decode_frame, encode_command
from coderun.exceptions import ConnectionClosedError, NotConnectedError, ProtocolError
from coderun.gate import GateState, ReadinessGate
from coderun.protocol import ConnectionLostEvent, SessionEvent, StartJobCommand, StdinCommand
from coderun.state import JobStateMachine
from coderun.transport import build_connect_url, websocket_connection_factory

if TYPE_CHECKING:
    from coderun.config import ClientConfig
    from coderun.models import JobOutcome, JobStatus
    from coderun.transport import Connection, ConnectionFactory

logger = get_logger(__name__)

EventCallback = Callable[[SessionEvent], None]


class Session:
    """Session façade: connect, send, disconnect.

    Must be used from inside a running event loop.

    Attributes:
        session_id: Identifier sent in the current connection's handshake
        epoch: Number of connect() calls so far; tags the current connection
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._config = config
        self._factory = connection_factory or websocket_connection_factory(
            open_timeout=config.open_timeout_seconds,
            close_timeout=config.close_timeout_seconds,
            max_frame_bytes=config.max_frame_bytes,
        )
        self._jobs = JobStateMachine()
        self._connection: Connection | None = None
        self._gate: ReadinessGate | None = None
        self._on_event: EventCallback | None = None
        self._ever_connected = False
        self._closing: set[asyncio.Task[None]] = set()
        self.session_id: str | None = None
        self.epoch = 0

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def status(self) -> JobStatus:
        """Current job status (IDLE, STARTING or RUNNING)."""
        return self._jobs.status

    @property
    def job_id(self) -> str | None:
        """Id of the running job, None unless RUNNING."""
        return self._jobs.job_id

    @property
    def last_outcome(self) -> JobOutcome | None:
        """How the most recent job ended, including abandonment."""
        return self._jobs.last_outcome

    @property
    def is_connected(self) -> bool:
        """A connection is owned (opening or open)."""
        return self._connection is not None

    @property
    def is_open(self) -> bool:
        """The owned connection has reported open."""
        return self._gate is not None and self._gate.state is GateState.OPEN

    # -------------------------------------------------------------------------
    # Core API
    # -------------------------------------------------------------------------

    def connect(self, on_event: EventCallback, session_id: str | None = None) -> str:
        """Replace any current connection with a fresh one.

        Does not wait for the old socket to finish closing; its listener is
        detached before the new connection exists.

        Args:
            on_event: Receives every delivered event, in receipt order
            session_id: Handshake identifier (default: new uuid4 hex)

        Returns:
            The session id in use
        """
        self._teardown("superseded by a new connection")

        self.epoch += 1
        self.session_id = session_id or uuid4().hex
        url = build_connect_url(self._config.url, self.session_id, self._config.token.get_secret_value())
        connection = self._factory(url, self.epoch, self)
        self._connection = connection
        self._gate = ReadinessGate(connection.transmit, epoch=self.epoch)
        self._on_event = on_event
        self._ever_connected = True

        logger.info("Connecting", extra={"session_id": self.session_id, "epoch": self.epoch})
        connection.open()
        return self.session_id

    async def send(self, command: StartJobCommand | StdinCommand) -> None:
        """Send a command through the current connection's readiness gate.

        stdin with no running target job is a silent no-op. A start_job
        cancelled while still queued is withdrawn and status returns to IDLE.

        Raises:
            NotConnectedError: connect() was never called
            ConnectionClosedError: Connection closed, dropped, or superseded
                before the command could be transmitted
            JobActiveError: start_job while a job is starting or running
        """
        match command:
            case StdinCommand(job_id=job_id):
                if not self._jobs.accepts_stdin(job_id):
                    logger.debug(
                        "Ignoring stdin without a running target job",
                        extra={"job_id": job_id, "status": self._jobs.status.value},
                    )
                    return
                gate = self._require_gate()
            case StartJobCommand():
                gate = self._require_gate()
                self._jobs.start_submitted()
                await gate.submit(encode_command(command), on_withdraw=lambda: self._withdraw_start(gate))
                return
            case _:
                assert_never(command)

        await gate.submit(encode_command(command))

    async def send_stdin(self, text: str) -> None:
        """Send text to the running job's stdin; no-op when nothing runs."""
        job_id = self._jobs.job_id
        if job_id is None:
            logger.debug("Ignoring stdin: no running job")
            return
        await self.send(StdinCommand(job_id=job_id, input=text))

    def disconnect(self) -> JobOutcome | None:
        """Close the current connection and return to the no-connection baseline.

        Returns:
            Outcome of a job abandoned by this disconnect, if one was in flight
        """
        return self._teardown("disconnected by caller")

    async def aclose(self) -> None:
        """Disconnect and wait for every closed connection to finish tearing down."""
        self.disconnect()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    # -------------------------------------------------------------------------
    # ConnectionListener
    # -------------------------------------------------------------------------

    def on_open(self, epoch: int) -> None:
        if epoch != self.epoch or self._gate is None:
            logger.debug("Ignoring open from superseded connection", extra={"epoch": epoch})
            return
        self._gate.open()

    def on_frame(self, epoch: int, frame: str | bytes) -> None:
        callback = self._on_event
        if epoch != self.epoch or callback is None:
            logger.debug("Discarding frame from superseded connection", extra={"epoch": epoch})
            return

        try:
            message = decode_frame(frame)
        except ProtocolError as e:
            logger.warning("Dropping inbound frame: %s", e.message, extra={"epoch": epoch, **e.context})
            return

        if self._jobs.apply(message):
            self._deliver(callback, message)

    def on_closed(self, epoch: int, reason: str, code: int | None, established: bool) -> None:
        if epoch != self.epoch or self._connection is None:
            return
        callback = self._on_event
        connection, gate = self._connection, self._gate
        self._connection = None
        self._gate = None
        self._on_event = None

        if gate is not None:
            gate.close(reason, code=code)
        self._jobs.abandon(reason)
        self._retire(connection)

        if callback is not None:
            self._deliver(callback, ConnectionLostEvent(reason=reason, code=code, established=established))

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _require_gate(self) -> ReadinessGate:
        if self._gate is not None:
            return self._gate
        if not self._ever_connected:
            raise NotConnectedError("send() called before connect()")
        raise ConnectionClosedError(
            "Session has no open connection; connect() again",
            context={"session_id": self.session_id, "epoch": self.epoch},
        )

    def _withdraw_start(self, gate: ReadinessGate) -> None:
        # A closed or superseded gate already abandoned its job.
        if gate is self._gate:
            self._jobs.start_withdrawn()

    def _teardown(self, reason: str) -> JobOutcome | None:
        connection, gate = self._connection, self._gate
        self._connection = None
        self._gate = None
        self._on_event = None

        if connection is not None:
            connection.close()
            self._retire(connection)
            logger.debug("Connection released", extra={"epoch": connection.epoch, "reason": reason})
        if gate is not None:
            gate.close(reason)
        return self._jobs.abandon(reason)

    def _retire(self, connection: Connection) -> None:
        """Track socket teardown so aclose() can wait for it."""
        task = asyncio.ensure_future(connection.wait_closed())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def _deliver(self, callback: EventCallback, event: SessionEvent) -> None:
        try:
            callback(event)
        except Exception:
            logger.exception("on_event callback raised", extra={"event_type": event.type})

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: object,
    ) -> None:
        """Exit async context manager - ensure cleanup."""
        await self.aclose()
