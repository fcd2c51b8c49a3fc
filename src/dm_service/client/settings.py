from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Timeouts and retry policy of the messaging client (env prefix ``DM_CLIENT_``)."""

    REQUEST_TIMEOUT: float = 10.0
    CONNECT_TIMEOUT: float = 5.0

    # snapshot fetch on open: attempts before the timeline goes to the error state
    FETCH_ATTEMPTS: int = 2
    FETCH_LIMIT: int = 50
    FETCH_RETRY_DELAY: float = 0.5
    FETCH_RETRY_MAX_DELAY: float = 5.0

    HANDSHAKE_TIMEOUT: float = 5.0
    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int | None = None

    CACHE_DIR: Path | None = None
    CACHE_MAX_MESSAGES: int = 200

    model_config = SettingsConfigDict(
        env_prefix="DM_CLIENT_",
        env_file=".env",
        extra="ignore",
    )
