"""Constants for coderun protocol limits and defaults."""

from typing import Final

# ============================================================================
# Job Defaults
# ============================================================================

DEFAULT_TIMEOUT_MS: Final[int] = 300_000
"""Default `timeoutMs` sent with start_job (5 minutes). Advisory only: enforced remotely."""

MAX_TIMEOUT_MS: Final[int] = 300_000
"""Largest timeout a caller may request."""

MAX_CODE_SIZE: Final[int] = 1_000_000
"""Maximum size in characters for code submitted with start_job."""

# ============================================================================
# Connection
# ============================================================================

SESSION_ID_PARAM: Final[str] = "sessionId"
"""Query parameter carrying the per-run session identifier in the handshake."""

TOKEN_PARAM: Final[str] = "token"
"""Query parameter carrying the access credential in the handshake."""

DEFAULT_OPEN_TIMEOUT_SECONDS: Final[float] = 10.0
"""Time allowed for the handshake before the connection counts as failed."""

DEFAULT_CLOSE_TIMEOUT_SECONDS: Final[float] = 2.0
"""Time allowed for the closing handshake of a superseded connection."""

DEFAULT_MAX_FRAME_BYTES: Final[int] = 16 * 1024 * 1024
"""Largest inbound frame accepted by the transport (16 MiB)."""

FRAME_PREVIEW_CHARS: Final[int] = 200
"""Characters of a dropped frame kept in diagnostics."""

# ============================================================================
# Output Banners
# ============================================================================

BANNER_SUCCESS: Final[str] = "\n=== Code Execution Successful ===\n"
BANNER_FAILURE: Final[str] = "\n=== Code Exited With Errors ===\n"
BANNER_TIMEOUT: Final[str] = "\n=== Code Execution Timed Out ===\n"
ERROR_PREFIX: Final[str] = "[error] "
CONNECTION_PREFIX: Final[str] = "[connection] unable to run: "
