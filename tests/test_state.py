"""Tests for the job state machine."""

import pytest

from coderun.exceptions import JobActiveError
from coderun.models import JobStatus
from coderun.protocol import (
    JobErrorMessage,
    JobFinishedMessage,
    JobStartedMessage,
    LogMessage,
    NeedsInputMessage,
    OutputChunkMessage,
)
from coderun.state import JobStateMachine


@pytest.fixture
def jobs() -> JobStateMachine:
    return JobStateMachine()


def _running(jobs: JobStateMachine, job_id: str = "j1") -> JobStateMachine:
    jobs.start_submitted()
    assert jobs.apply(JobStartedMessage(job_id=job_id))
    return jobs


class TestLifecycle:
    def test_initial_state(self, jobs: JobStateMachine) -> None:
        assert jobs.status is JobStatus.IDLE
        assert jobs.job_id is None
        assert jobs.last_outcome is None
        assert not jobs.active

    def test_start_moves_to_starting(self, jobs: JobStateMachine) -> None:
        jobs.start_submitted()
        assert jobs.status is JobStatus.STARTING
        assert jobs.active

    def test_job_started_captures_id(self, jobs: JobStateMachine) -> None:
        _running(jobs, "abc")
        assert jobs.status is JobStatus.RUNNING
        assert jobs.job_id == "abc"

    def test_job_finished_returns_to_idle(self, jobs: JobStateMachine) -> None:
        _running(jobs)
        assert jobs.apply(JobFinishedMessage(job_id="j1", exit_code=0))
        assert jobs.status is JobStatus.IDLE
        assert jobs.job_id is None
        assert jobs.last_outcome is not None
        assert jobs.last_outcome.status is JobStatus.FINISHED
        assert jobs.last_outcome.exit_code == 0
        assert not jobs.last_outcome.abandoned

    def test_timeout_recorded(self, jobs: JobStateMachine) -> None:
        _running(jobs)
        jobs.apply(JobFinishedMessage(job_id="j1", exit_code=None, killed_by_timeout=True))
        assert jobs.last_outcome is not None
        assert jobs.last_outcome.killed_by_timeout is True
        assert jobs.last_outcome.exit_code is None

    def test_job_error_while_starting(self, jobs: JobStateMachine) -> None:
        jobs.start_submitted()
        assert jobs.apply(JobErrorMessage(message="compiler missing"))
        assert jobs.status is JobStatus.IDLE
        assert jobs.last_outcome is not None
        assert jobs.last_outcome.status is JobStatus.ERRORED
        assert jobs.last_outcome.message == "compiler missing"

    def test_job_error_while_running_keeps_id(self, jobs: JobStateMachine) -> None:
        _running(jobs, "j9")
        jobs.apply(JobErrorMessage(message="sandbox crashed"))
        assert jobs.last_outcome is not None
        assert jobs.last_outcome.job_id == "j9"

    def test_start_while_active_rejected(self, jobs: JobStateMachine) -> None:
        jobs.start_submitted()
        with pytest.raises(JobActiveError):
            jobs.start_submitted()
        assert jobs.status is JobStatus.STARTING

    def test_second_job_after_finish(self, jobs: JobStateMachine) -> None:
        _running(jobs, "j1")
        jobs.apply(JobFinishedMessage(job_id="j1", exit_code=1))
        _running(jobs, "j2")
        assert jobs.job_id == "j2"


    def test_start_withdrawn_returns_to_idle(self, jobs: JobStateMachine) -> None:
        jobs.start_submitted()
        jobs.start_withdrawn()
        assert jobs.status is JobStatus.IDLE
        assert jobs.last_outcome is None
        jobs.start_submitted()
        assert jobs.status is JobStatus.STARTING

    def test_start_withdrawn_ignored_once_running(self, jobs: JobStateMachine) -> None:
        _running(jobs, "j1")
        jobs.start_withdrawn()
        assert jobs.status is JobStatus.RUNNING
        assert jobs.job_id == "j1"


class TestUnexpectedEvents:
    def test_job_started_without_start_dropped(self, jobs: JobStateMachine) -> None:
        assert jobs.apply(JobStartedMessage(job_id="ghost")) is False
        assert jobs.status is JobStatus.IDLE
        assert jobs.job_id is None

    def test_duplicate_job_started_dropped(self, jobs: JobStateMachine) -> None:
        _running(jobs, "j1")
        assert jobs.apply(JobStartedMessage(job_id="j2")) is False
        assert jobs.job_id == "j1"

    def test_job_finished_for_other_job_dropped(self, jobs: JobStateMachine) -> None:
        _running(jobs, "j1")
        assert jobs.apply(JobFinishedMessage(job_id="j0", exit_code=0)) is False
        assert jobs.status is JobStatus.RUNNING

    def test_job_finished_while_idle_dropped(self, jobs: JobStateMachine) -> None:
        assert jobs.apply(JobFinishedMessage(job_id="j1", exit_code=0)) is False
        assert jobs.last_outcome is None

    def test_job_error_while_idle_delivered(self, jobs: JobStateMachine) -> None:
        assert jobs.apply(JobErrorMessage(message="bad token")) is True
        assert jobs.status is JobStatus.IDLE
        assert jobs.last_outcome is None

    @pytest.mark.parametrize(
        "message",
        [
            OutputChunkMessage(type="stdout", chunk="x"),
            OutputChunkMessage(type="stderr", chunk="y"),
            LogMessage(message="queued"),
            NeedsInputMessage(job_id="j1"),
        ],
    )
    def test_passthrough_in_any_state(self, jobs: JobStateMachine, message) -> None:
        assert jobs.apply(message) is True
        assert jobs.status is JobStatus.IDLE


class TestStdinTarget:
    def test_only_running_job_accepts(self, jobs: JobStateMachine) -> None:
        assert not jobs.accepts_stdin("j1")
        jobs.start_submitted()
        assert not jobs.accepts_stdin("j1")
        jobs.apply(JobStartedMessage(job_id="j1"))
        assert jobs.accepts_stdin("j1")
        assert not jobs.accepts_stdin("j2")


class TestAbandon:
    def test_abandon_idle_is_none(self, jobs: JobStateMachine) -> None:
        assert jobs.abandon("disconnected") is None
        assert jobs.last_outcome is None

    def test_abandon_running(self, jobs: JobStateMachine) -> None:
        _running(jobs, "j1")
        outcome = jobs.abandon("disconnected by caller")
        assert outcome is not None
        assert outcome.abandoned
        assert outcome.job_id == "j1"
        assert outcome.status is JobStatus.ERRORED
        assert outcome.message == "disconnected by caller"
        assert jobs.status is JobStatus.IDLE
        assert jobs.last_outcome == outcome

    def test_abandon_starting_has_no_id(self, jobs: JobStateMachine) -> None:
        jobs.start_submitted()
        outcome = jobs.abandon("superseded")
        assert outcome is not None
        assert outcome.job_id is None
