"""coderun: client for a remote code-execution job server.

Submit code, stream its stdout/stderr, answer its stdin prompts, and start
over by reconnecting, all over one WebSocket per run.

Quick Start (single execution):
    ```python
    from coderun import ClientConfig, Language, run_code

    config = ClientConfig(url="wss://run.example.com/ws", token="secret")
    result = await run_code(config, Language.PYTHON, "print('hello')")
    print(result.stdout)  # "hello\\n"
    ```

Session (event-driven, the way an editor uses it):
    ```python
    from coderun import OutputBuffer, Session, StartJobCommand

    output = OutputBuffer()
    async with Session(config) as session:
        session.connect(output.handle)
        await session.send(StartJobCommand(language="python", code="print(input())"))
        ...
        await session.send_stdin("hi\\n")
    ```

Configuration from environment:
    CODERUN_WS_URL, CODERUN_WS_TOKEN, CODERUN_LOG_LEVEL
"""

from coderun.config import ClientConfig
from coderun.exceptions import (
    CodeValidationError,
    CoderunError,
    CommunicationError,
    ConnectionClosedError,
    InputValidationError,
    JobActiveError,
    NotConnectedError,
    ProtocolError,
    RemoteJobError,
    ShareLinkError,
)
from coderun.models import ExecutionResult, JobOutcome, JobStatus, Language
from coderun.output import OutputBuffer
from coderun.protocol import (
    ConnectionLostEvent,
    JobErrorMessage,
    JobFinishedMessage,
    JobStartedMessage,
    LogMessage,
    NeedsInputMessage,
    OutputChunkMessage,
    SessionEvent,
    StartJobCommand,
    StdinCommand,
)
from coderun.runner import run_code
from coderun.session import Session

__all__ = [
    "ClientConfig",
    "CodeValidationError",
    "CoderunError",
    "CommunicationError",
    "ConnectionClosedError",
    "ConnectionLostEvent",
    "ExecutionResult",
    "InputValidationError",
    "JobActiveError",
    "JobErrorMessage",
    "JobFinishedMessage",
    "JobOutcome",
    "JobStartedMessage",
    "JobStatus",
    "Language",
    "LogMessage",
    "NeedsInputMessage",
    "NotConnectedError",
    "OutputBuffer",
    "OutputChunkMessage",
    "ProtocolError",
    "RemoteJobError",
    "Session",
    "SessionEvent",
    "ShareLinkError",
    "StartJobCommand",
    "StdinCommand",
    "run_code",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("coderun-client")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
