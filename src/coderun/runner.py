"""One-shot execution: connect, start a job, collect output until it ends.

Example:
    ```python
    result = await run_code(config, Language.PYTHON, 'name = input()\\nprint("hi", name)', stdin=["Ada"])
    assert result.stdout == "hi Ada\\n"
    ```
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Iterator
from typing import TYPE_CHECKING

from coderun._logging import get_logger
from coderun.exceptions import CodeValidationError, ConnectionClosedError, RemoteJobError
from coderun.models import ExecutionResult, Language
from coderun.protocol import (
    ConnectionLostEvent,
    JobErrorMessage,
    JobFinishedMessage,
    JobStartedMessage,
    NeedsInputMessage,
    OutputChunkMessage,
    SessionEvent,
    StartJobCommand,
)
from coderun.session import EventCallback, Session

if TYPE_CHECKING:
    from coderun.config import ClientConfig
    from coderun.transport import ConnectionFactory

logger = get_logger(__name__)

InputProvider = Callable[[], Awaitable[str | None]]
"""Async source of stdin lines; None means no more input."""


def _as_provider(stdin: Iterable[str] | InputProvider | None) -> InputProvider:
    if stdin is None:

        async def _none() -> str | None:
            return None

        return _none
    if callable(stdin):
        return stdin

    lines: Iterator[str] = iter(stdin)

    async def _from_iterable() -> str | None:
        return next(lines, None)

    return _from_iterable


async def run_code(
    config: ClientConfig,
    language: Language | str,
    code: str,
    *,
    timeout_ms: int | None = None,
    stdin: Iterable[str] | InputProvider | None = None,
    on_event: EventCallback | None = None,
    session_id: str | None = None,
    connection_factory: ConnectionFactory | None = None,
) -> ExecutionResult:
    """Run code on the job server and wait for it to finish.

    Each needs_input event is answered with the next stdin line (a trailing
    newline is added if missing). When input runs out the job is left
    waiting; the server's timeout ends it.

    Args:
        config: Client configuration
        language: Language to run
        code: Source code
        timeout_ms: Remote timeout (default: config.default_timeout_ms)
        stdin: Lines to feed, or an async provider returning None when done
        on_event: Also receives every session event (e.g. OutputBuffer.handle)
        session_id: Handshake id (default: random)
        connection_factory: Transport override (tests)

    Returns:
        ExecutionResult with output in arrival order

    Raises:
        CodeValidationError: Code is empty or whitespace-only
        ConnectionClosedError: Connection failed or dropped before the job ended
        RemoteJobError: Server reported job_error
    """
    if not code.strip():
        raise CodeValidationError("Code is empty")

    command = StartJobCommand(
        language=Language(language),
        code=code,
        timeout_ms=timeout_ms if timeout_ms is not None else config.default_timeout_ms,
    )
    next_input = _as_provider(stdin)
    terminal: asyncio.Future[SessionEvent] = asyncio.get_running_loop().create_future()
    output: list[str] = []
    stdout: list[str] = []
    stderr: list[str] = []
    job_id: str | None = None
    input_tasks: set[asyncio.Task[None]] = set()

    async with Session(config, connection_factory=connection_factory) as session:

        async def answer_input() -> None:
            line = await next_input()
            if line is None:
                logger.debug("Job wants input but none is left", extra={"job_id": session.job_id})
                return
            await session.send_stdin(line if line.endswith("\n") else line + "\n")

        def input_done(task: asyncio.Task[None]) -> None:
            input_tasks.discard(task)
            if not task.cancelled() and (exc := task.exception()) is not None:
                logger.warning("Answering needs_input failed: %s", exc, extra={"job_id": job_id})

        def handle(event: SessionEvent) -> None:
            nonlocal job_id
            match event:
                case OutputChunkMessage(type="stdout", chunk=chunk):
                    stdout.append(chunk)
                    output.append(chunk)
                case OutputChunkMessage(chunk=chunk):
                    stderr.append(chunk)
                    output.append(chunk)
                case JobStartedMessage(job_id=started):
                    job_id = started
                case NeedsInputMessage():
                    task = asyncio.create_task(answer_input())
                    input_tasks.add(task)
                    task.add_done_callback(input_done)
                case JobFinishedMessage() | JobErrorMessage() | ConnectionLostEvent():
                    if not terminal.done():
                        terminal.set_result(event)
                case _:
                    pass
            # Caller callback last; if it raises, the terminal event is already recorded.
            if on_event is not None:
                on_event(event)

        session.connect(handle, session_id)
        await session.send(command)
        final = await terminal

        pending_inputs = list(input_tasks)
        for task in pending_inputs:
            task.cancel()
        await asyncio.gather(*pending_inputs, return_exceptions=True)

    match final:
        case JobFinishedMessage():
            return ExecutionResult(
                output="".join(output),
                stdout="".join(stdout),
                stderr="".join(stderr),
                exit_code=final.exit_code,
                killed_by_timeout=final.killed_by_timeout,
                job_id=job_id,
            )
        case JobErrorMessage(message=message):
            raise RemoteJobError(message, context={"job_id": job_id, "output": "".join(output)})
        case ConnectionLostEvent():
            raise ConnectionClosedError(
                f"Connection lost: {final.reason}",
                context={"job_id": job_id},
                code=final.code,
                established=final.established,
            )
        case _:
            raise AssertionError(f"unexpected terminal event: {final.type}")
