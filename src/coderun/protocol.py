"""Job-control protocol models.

Defines the commands a client sends and the events a job server streams back.
Protocol: one JSON object per WebSocket text frame, discriminated by `type`.
Field names on the wire are camelCase (jobId, exitCode, timeoutMs,
killedByTimeout); Python attributes are snake_case with aliases.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coderun.constants import DEFAULT_TIMEOUT_MS, MAX_CODE_SIZE, MAX_TIMEOUT_MS
from coderun.models import Language  # noqa: TC001 - Required at runtime for Pydantic


class WireModel(BaseModel):
    """Base for every frame: accepts snake_case or camelCase, ignores unknown fields."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# Client Commands (client → server)
# ============================================================================


class StartJobCommand(WireModel):
    """Ask the server to run code.

    The server answers with job_started, then streams stdout/stderr, and ends
    with job_finished or job_error. timeout_ms is advisory: the server kills
    the job, the client never watches the clock.
    """

    type: Literal["start_job"] = "start_job"
    language: Language = Field(description="Language to execute")
    code: str = Field(min_length=1, max_length=MAX_CODE_SIZE, description="Source code")
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        ge=1,
        le=MAX_TIMEOUT_MS,
        alias="timeoutMs",
        description="Remote execution timeout in milliseconds",
    )

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Reject null bytes in code (runtimes truncate at them silently)."""
        if "\x00" in v:
            raise ValueError("Code cannot contain null bytes")
        return v


class StdinCommand(WireModel):
    """Deliver user input to the running job's stdin."""

    type: Literal["stdin"] = "stdin"
    job_id: str = Field(alias="jobId", description="Target job")
    input: str = Field(description="Text written to stdin, newline included by the caller")


ClientCommand = Annotated[StartJobCommand | StdinCommand, Field(discriminator="type")]


# ============================================================================
# Server Events (server → client)
# ============================================================================


class OutputChunkMessage(WireModel):
    """A fragment of job output.

    Chunks are opaque text, not lines: a line can span several chunks and a
    chunk can hold several lines.
    """

    type: Literal["stdout", "stderr"] = Field(description="Output stream")
    job_id: str | None = Field(default=None, alias="jobId")
    chunk: str


class JobStartedMessage(WireModel):
    """Server accepted start_job and assigned a job id."""

    type: Literal["job_started"] = "job_started"
    job_id: str = Field(alias="jobId")


class JobFinishedMessage(WireModel):
    """Job process exited."""

    type: Literal["job_finished"] = "job_finished"
    job_id: str = Field(alias="jobId")
    exit_code: int | None = Field(default=None, alias="exitCode")
    killed_by_timeout: bool = Field(default=False, alias="killedByTimeout")


class JobErrorMessage(WireModel):
    """Job could not start or failed outside the user's program."""

    type: Literal["job_error"] = "job_error"
    message: str


class LogMessage(WireModel):
    """Informational server log line."""

    type: Literal["log"] = "log"
    message: str


class NeedsInputMessage(WireModel):
    """Job is blocked reading stdin."""

    type: Literal["needs_input"] = "needs_input"
    job_id: str = Field(alias="jobId")


ServerMessage = Annotated[
    OutputChunkMessage
    | JobStartedMessage
    | JobFinishedMessage
    | JobErrorMessage
    | LogMessage
    | NeedsInputMessage,
    Field(discriminator="type"),
]


# ============================================================================
# Client-local Events (never on the wire)
# ============================================================================


class ConnectionLostEvent(BaseModel):
    """The session's connection failed to establish or dropped.

    Any job in flight is gone: the protocol has no resume, so the caller
    must connect() again to run anything.
    """

    type: Literal["connection_lost"] = "connection_lost"
    reason: str = Field(description="Human-readable cause")
    code: int | None = Field(default=None, description="WebSocket close code, if any")
    established: bool = Field(description="False if the connection never opened")


SessionEvent = (
    OutputChunkMessage
    | JobStartedMessage
    | JobFinishedMessage
    | JobErrorMessage
    | LogMessage
    | NeedsInputMessage
    | ConnectionLostEvent
)
"""Everything a session delivers to its on_event callback."""
