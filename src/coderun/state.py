"""Job state machine.

Consumes decoded server events for one session and decides which of them
reach the caller.

    IDLE      --start_job submitted-->  STARTING
    STARTING  --job_started-->          RUNNING    [captures job id]
    RUNNING   --stdout/stderr-->        RUNNING    [chunk passes through]
    RUNNING   --job_finished-->         FINISHED -> IDLE
    RUNNING   --job_error-->            ERRORED  -> IDLE
    STARTING  --job_error-->            ERRORED  -> IDLE
    STARTING  --start_job withdrawn-->  IDLE       [cancelled before transmission]
    any       --disconnect/drop-->      IDLE       [nothing emitted]

FINISHED and ERRORED are recorded in `last_outcome`; `status` never rests
on them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, assert_never

from coderun._logging import get_logger
from coderun.exceptions import JobActiveError
from coderun.models import JobOutcome, JobStatus
from coderun.protocol import (
    JobErrorMessage,
    JobFinishedMessage,
    JobStartedMessage,
    LogMessage,
    NeedsInputMessage,
    OutputChunkMessage,
)

if TYPE_CHECKING:
    from coderun.protocol import ServerMessage

logger = get_logger(__name__)


class JobStateMachine:
    """Tracks the job of one session.

    All methods run synchronously inside an event-loop turn; no locking.

    Attributes:
        status: IDLE, STARTING or RUNNING
        job_id: Server-assigned id, non-None only while RUNNING
        last_outcome: How the previous job ended (None before the first one)
    """

    def __init__(self) -> None:
        self.status: JobStatus = JobStatus.IDLE
        self.job_id: str | None = None
        self.last_outcome: JobOutcome | None = None

    @property
    def active(self) -> bool:
        """A job is starting or running."""
        return self.status in (JobStatus.STARTING, JobStatus.RUNNING)

    def start_submitted(self) -> None:
        """Record that start_job is about to be sent.

        Raises:
            JobActiveError: A job is already starting or running
        """
        if self.status is not JobStatus.IDLE:
            raise JobActiveError(
                "A job is already active on this connection; connect() again to start a new run",
                context={"status": self.status.value, "job_id": self.job_id},
            )
        self._transition(JobStatus.STARTING)

    def start_withdrawn(self) -> None:
        """Undo start_submitted() for a start_job that never reached the wire."""
        if self.status is not JobStatus.STARTING:
            return
        logger.debug("start_job withdrawn before transmission")
        self._transition(JobStatus.IDLE)

    def accepts_stdin(self, job_id: str) -> bool:
        """Whether stdin addressed to job_id has a live target."""
        return self.status is JobStatus.RUNNING and job_id == self.job_id

    def apply(self, message: ServerMessage) -> bool:
        """Advance state for one inbound message.

        Returns:
            True if the message should be delivered to the caller
        """
        match message:
            case OutputChunkMessage():
                # Opaque pass-through in any state; order is the transport's.
                return True
            case JobStartedMessage(job_id=job_id):
                if self.status is not JobStatus.STARTING:
                    logger.warning(
                        "Dropping job_started without a pending start_job",
                        extra={"status": self.status.value, "job_id": job_id},
                    )
                    return False
                self.job_id = job_id
                self._transition(JobStatus.RUNNING)
                return True
            case JobFinishedMessage(job_id=job_id):
                if self.status is not JobStatus.RUNNING or job_id != self.job_id:
                    logger.warning(
                        "Dropping job_finished for a job that is not running",
                        extra={"status": self.status.value, "job_id": job_id, "current_job_id": self.job_id},
                    )
                    return False
                self._end(
                    JobOutcome(
                        job_id=job_id,
                        status=JobStatus.FINISHED,
                        exit_code=message.exit_code,
                        killed_by_timeout=message.killed_by_timeout,
                    )
                )
                return True
            case JobErrorMessage(message=text):
                if self.active:
                    self._end(JobOutcome(job_id=self.job_id, status=JobStatus.ERRORED, message=text))
                # Delivered even when idle: the server uses it for handshake-level refusals too.
                return True
            case LogMessage() | NeedsInputMessage():
                return True
            case _:
                assert_never(message)

    def abandon(self, reason: str) -> JobOutcome | None:
        """Drop any in-flight job without emitting an event.

        Returns:
            The abandoned job's outcome, or None if nothing was in flight
        """
        if not self.active:
            return None
        outcome = JobOutcome(job_id=self.job_id, status=JobStatus.ERRORED, message=reason, abandoned=True)
        logger.info(
            "Abandoning in-flight job",
            extra={"job_id": self.job_id, "status": self.status.value, "reason": reason},
        )
        self._end(outcome)
        return outcome

    def _end(self, outcome: JobOutcome) -> None:
        self.last_outcome = outcome
        self._transition(outcome.status)
        self.job_id = None
        self._transition(JobStatus.IDLE)

    def _transition(self, new: JobStatus) -> None:
        logger.debug("Job status %s -> %s", self.status.value, new.value, extra={"job_id": self.job_id})
        self.status = new
