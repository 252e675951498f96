"""Tests for the readiness gate.

The gate is the only place a send() can suspend, so ordering guarantees
live or die here.
"""

import asyncio

import pytest

from coderun.exceptions import ConnectionClosedError
from coderun.gate import GateState, ReadinessGate


@pytest.fixture
def wire() -> list[str]:
    return []


@pytest.fixture
def gate(wire: list[str]) -> ReadinessGate:
    return ReadinessGate(wire.append, epoch=3)


async def _settle() -> None:
    """Let queued submit() coroutines reach their await point."""
    for _ in range(3):
        await asyncio.sleep(0)


class TestOpenGate:
    async def test_transmits_immediately_when_open(self, gate: ReadinessGate, wire: list[str]) -> None:
        gate.open()
        await gate.submit("a")
        assert wire == ["a"]
        assert gate.state is GateState.OPEN

    async def test_open_is_idempotent(self, gate: ReadinessGate, wire: list[str]) -> None:
        task = asyncio.create_task(gate.submit("a"))
        await _settle()
        gate.open()
        gate.open()
        await task
        assert wire == ["a"]


class TestQueueing:
    async def test_frames_wait_while_connecting(self, gate: ReadinessGate, wire: list[str]) -> None:
        task = asyncio.create_task(gate.submit("a"))
        await _settle()
        assert wire == []
        assert gate.pending_count == 1
        assert not task.done()

        gate.open()
        await task
        assert wire == ["a"]
        assert gate.pending_count == 0

    async def test_drain_preserves_submission_order(self, gate: ReadinessGate, wire: list[str]) -> None:
        tasks = [asyncio.create_task(gate.submit(f)) for f in ("s1", "s2", "s3")]
        await _settle()
        gate.open()
        await asyncio.gather(*tasks)
        assert wire == ["s1", "s2", "s3"]

    async def test_drain_happens_before_later_submissions(self, gate: ReadinessGate, wire: list[str]) -> None:
        """A submission made after open() cannot overtake queued frames."""
        queued = asyncio.create_task(gate.submit("early"))
        await _settle()
        gate.open()
        await gate.submit("late")
        await queued
        assert wire == ["early", "late"]

    async def test_cancelled_waiter_is_withdrawn(self, gate: ReadinessGate, wire: list[str]) -> None:
        keep_first = asyncio.create_task(gate.submit("one"))
        withdrawn = asyncio.create_task(gate.submit("two"))
        keep_last = asyncio.create_task(gate.submit("three"))
        await _settle()

        withdrawn.cancel()
        await _settle()
        gate.open()
        await asyncio.gather(keep_first, keep_last)

        assert wire == ["one", "three"]
        assert withdrawn.cancelled()


    async def test_withdraw_hook_runs_for_untransmitted_frame(self, gate: ReadinessGate, wire: list[str]) -> None:
        withdrawn: list[str] = []
        task = asyncio.create_task(gate.submit("a", on_withdraw=lambda: withdrawn.append("a")))
        await _settle()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert withdrawn == ["a"]
        assert gate.pending_count == 0
        gate.open()
        assert wire == []

    async def test_withdraw_hook_skipped_once_transmitted(self, gate: ReadinessGate, wire: list[str]) -> None:
        withdrawn: list[str] = []
        task = asyncio.create_task(gate.submit("a", on_withdraw=lambda: withdrawn.append("a")))
        await _settle()

        gate.open()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert wire == ["a"]
        assert withdrawn == []


class TestClose:
    async def test_close_rejects_every_waiter(self, gate: ReadinessGate, wire: list[str]) -> None:
        tasks = [asyncio.create_task(gate.submit(f)) for f in ("a", "b")]
        await _settle()

        gate.close("refused", code=1006)
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert wire == []
        assert all(isinstance(r, ConnectionClosedError) for r in results)
        assert gate.state is GateState.CLOSED
        assert gate.pending_count == 0

    async def test_closed_error_carries_cause(self, gate: ReadinessGate) -> None:
        gate.close("handshake rejected: HTTP 403", code=None)
        with pytest.raises(ConnectionClosedError) as exc_info:
            await gate.submit("a")
        assert "handshake rejected" in exc_info.value.message
        assert exc_info.value.established is False
        assert exc_info.value.context["epoch"] == 3

    async def test_close_after_open_marks_established(self, gate: ReadinessGate) -> None:
        gate.open()
        gate.close("server went away", code=1011)
        with pytest.raises(ConnectionClosedError) as exc_info:
            await gate.submit("a")
        assert exc_info.value.established is True
        assert exc_info.value.code == 1011

    async def test_gate_never_reopens(self, gate: ReadinessGate, wire: list[str]) -> None:
        gate.close()
        gate.open()
        assert gate.state is GateState.CLOSED
        with pytest.raises(ConnectionClosedError):
            await gate.submit("a")
        assert wire == []

    async def test_close_is_idempotent(self, gate: ReadinessGate) -> None:
        gate.close("first", code=1000)
        gate.close("second", code=1011)
        with pytest.raises(ConnectionClosedError) as exc_info:
            await gate.submit("a")
        assert exc_info.value.code == 1000
        assert "first" in exc_info.value.message
