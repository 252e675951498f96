"""Output sink: renders session events into one text stream with banners."""

from __future__ import annotations

from collections.abc import Callable

from coderun import constants
from coderun.protocol import (
    ConnectionLostEvent,
    JobErrorMessage,
    JobFinishedMessage,
    JobStartedMessage,
    OutputChunkMessage,
    SessionEvent,
)


class OutputBuffer:
    """Accumulates what a user sees in the output panel.

    stdout and stderr chunks are appended exactly as received. job_started
    clears previous output. Terminal events append a banner so a job that ran
    and failed reads differently from a job that never got to run.

    Args:
        on_write: Called with every appended piece (e.g. to echo to a terminal)
        banners: Append result banners; False keeps only program output and errors
    """

    def __init__(self, on_write: Callable[[str], None] | None = None, *, banners: bool = True) -> None:
        self._parts: list[str] = []
        self._on_write = on_write
        self._banners = banners

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def handle(self, event: SessionEvent) -> None:
        """Session on_event callback."""
        match event:
            case OutputChunkMessage(chunk=chunk):
                self._write(chunk)
            case JobStartedMessage():
                self.clear()
            case JobFinishedMessage(exit_code=exit_code, killed_by_timeout=killed):
                if not self._banners:
                    return
                if killed:
                    self._write(constants.BANNER_TIMEOUT)
                elif exit_code == 0:
                    self._write(constants.BANNER_SUCCESS)
                else:
                    self._write(constants.BANNER_FAILURE)
            case JobErrorMessage(message=message):
                self._write(f"{constants.ERROR_PREFIX}{message}\n")
            case ConnectionLostEvent(reason=reason):
                self._write(f"{constants.CONNECTION_PREFIX}{reason}\n")
            case _:
                # log / needs_input are advisory
                pass

    def echo_input(self, text: str) -> None:
        """Show text the user typed into the running program."""
        self._write(text)

    def clear(self) -> None:
        self._parts.clear()

    def _write(self, piece: str) -> None:
        self._parts.append(piece)
        if self._on_write is not None:
            self._on_write(piece)
