"""Exception hierarchy for coderun.

All exceptions inherit from CoderunError.

Hierarchy:
    CoderunError (base)
    ├── CommunicationError           ← connection-level failures
    │   ├── NotConnectedError        ← send() before any connect()
    │   └── ConnectionClosedError    ← connection closed/failed before transmission
    ├── ProtocolError                ← malformed or unknown inbound frame (absorbed)
    ├── RemoteJobError               ← job_error reported by the remote side
    └── InputValidationError (caller-bug marker base)
        ├── CodeValidationError      ← empty/null-byte/oversized code
        ├── JobActiveError           ← start_job while a job is in flight
        └── ShareLinkError           ← undecodable share link payload
"""

from __future__ import annotations

from typing import Any


class CoderunError(Exception):
    """Base exception for all coderun errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# =============================================================================
# Connection Errors
# =============================================================================


class CommunicationError(CoderunError):
    """Connection to the job server is unusable.

    Recoverable only by the caller issuing a fresh connect(); the client
    never reconnects on its own.
    """


class NotConnectedError(CommunicationError):
    """send() was called on a session that has never opened a connection."""


class ConnectionClosedError(CommunicationError):
    """The connection was closed, superseded, or failed to establish.

    Raised to every send() still waiting on the readiness gate when the
    gate is abandoned, and to any send() issued after the connection went
    away.

    Attributes:
        code: WebSocket close code, if the peer sent one
        established: Whether the connection ever reported open
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        code: int | None = None,
        established: bool = False,
    ):
        super().__init__(message, context)
        self.code = code
        self.established = established


# =============================================================================
# Protocol / Job Errors
# =============================================================================


class ProtocolError(CoderunError):
    """Inbound frame failed to parse or carries an unknown type.

    Raised by the codec and handled inside the session: the frame is logged
    and dropped. Callers never see it.

    Attributes:
        raw: Truncated preview of the offending frame
    """

    def __init__(self, message: str, raw: str, context: dict[str, Any] | None = None):
        ctx = context or {}
        ctx["raw"] = raw
        super().__init__(message, ctx)
        self.raw = raw


class RemoteJobError(CoderunError):
    """The remote side reported job_error.

    The session delivers job_error as an event; only run_code() turns it
    into this exception.
    """


# =============================================================================
# Input Validation Errors
# =============================================================================


class InputValidationError(CoderunError):
    """Base for caller bugs. The session is unaffected and can be reused."""


class CodeValidationError(InputValidationError):
    """Code is empty, whitespace-only, too large, or contains null bytes."""


class JobActiveError(InputValidationError):
    """start_job submitted while the current connection already has a job.

    A new run is a new connect(); the protocol has no way to start a second
    job on one connection.
    """


class ShareLinkError(InputValidationError):
    """Share link payload could not be decoded."""
