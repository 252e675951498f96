"""Runtime configuration from environment variables."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with CODERUN_ prefix.
    Example: CODERUN_WS_URL=wss://run.example.com/ws
    """

    model_config = SettingsConfigDict(
        env_prefix="CODERUN_",
        env_file=".env",
        extra="ignore",
    )

    # Job server
    ws_url: str = "ws://localhost:8080/ws"
    ws_token: SecretStr = SecretStr("")
