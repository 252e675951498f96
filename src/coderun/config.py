"""Client configuration for coderun.

ClientConfig holds everything a Session needs to reach the job server.

Example:
    ```python
    from coderun import ClientConfig, Session

    # From CODERUN_WS_URL / CODERUN_WS_TOKEN
    config = ClientConfig.from_settings()

    # Explicit
    config = ClientConfig(url="wss://run.example.com/ws", token="secret")
    session = Session(config)
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from coderun import constants

if TYPE_CHECKING:
    from coderun.settings import Settings


class ClientConfig(BaseModel):
    """Configuration for Session.

    Attributes:
        url: WebSocket endpoint of the job server (ws:// or wss://).
            sessionId and token query parameters are appended per connect().
        token: Access credential sent in the handshake.
        default_timeout_ms: timeoutMs used by run_code() and the CLI when the
            caller gives none. Range: 1-300000. Default: 300000.
        open_timeout_seconds: Handshake deadline. Past it the connection
            counts as failed to establish. Default: 10.
        close_timeout_seconds: Closing-handshake deadline for superseded
            connections. Default: 2.
        max_frame_bytes: Largest inbound frame accepted. Default: 16 MiB.
    """

    model_config = ConfigDict(
        frozen=True,  # Immutable after creation
        extra="forbid",  # Reject unknown fields
    )

    url: str = Field(description="Job server WebSocket URL")
    token: SecretStr = Field(default=SecretStr(""), description="Handshake access credential")
    default_timeout_ms: int = Field(
        default=constants.DEFAULT_TIMEOUT_MS,
        ge=1,
        le=constants.MAX_TIMEOUT_MS,
        description="Default remote execution timeout in milliseconds",
    )
    open_timeout_seconds: float = Field(
        default=constants.DEFAULT_OPEN_TIMEOUT_SECONDS,
        gt=0,
        description="Handshake deadline in seconds",
    )
    close_timeout_seconds: float = Field(
        default=constants.DEFAULT_CLOSE_TIMEOUT_SECONDS,
        gt=0,
        description="Closing handshake deadline in seconds",
    )
    max_frame_bytes: int = Field(
        default=constants.DEFAULT_MAX_FRAME_BYTES,
        ge=1024,
        description="Largest inbound frame accepted",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require a WebSocket scheme."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"url must start with ws:// or wss://, got {v!r}")
        return v

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: object) -> ClientConfig:
        """Build a config from CODERUN_* environment settings.

        Args:
            settings: Pre-loaded settings (default: read the environment)
            **overrides: Field values that win over the environment
        """
        from coderun.settings import Settings  # noqa: PLC0415

        settings = settings or Settings()
        values: dict[str, object] = {"url": settings.ws_url, "token": settings.ws_token}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
