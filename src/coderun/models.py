"""Data models for coderun."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Language(str, Enum):
    """Languages the remote executor accepts."""

    PYTHON = "python"
    JAVASCRIPT = "javascript"
    C = "c"
    CPP = "cpp"
    JAVA = "java"
    GO = "go"
    RUBY = "ruby"


class JobStatus(str, Enum):
    """Lifecycle status of the job tracked by a session."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FINISHED = "finished"
    ERRORED = "errored"


class JobOutcome(BaseModel):
    """What became of the last job that left Starting/Running.

    Finished and Errored are transient: the state machine records the outcome
    here and drops straight back to Idle.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str | None = Field(default=None, description="Server-assigned id (None if never started)")
    status: JobStatus = Field(description="FINISHED or ERRORED")
    exit_code: int | None = Field(default=None, description="Exit code, FINISHED only")
    killed_by_timeout: bool = Field(default=False, description="Remote killed the job at its timeout")
    message: str | None = Field(default=None, description="job_error text or disconnect reason")
    abandoned: bool = Field(default=False, description="Session went away before a terminal event")


class ExecutionResult(BaseModel):
    """Result of a one-shot run via run_code()."""

    output: str = Field(default="", description="stdout and stderr merged in arrival order")
    stdout: str = Field(default="", description="Standard output chunks joined")
    stderr: str = Field(default="", description="Standard error chunks joined")
    exit_code: int | None = Field(default=None, description="Remote exit code (None if not reported)")
    killed_by_timeout: bool = Field(default=False, description="Remote killed the job at its timeout")
    job_id: str | None = Field(default=None, description="Server-assigned job id")
