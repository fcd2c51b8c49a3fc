from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_ECHO: bool = False

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "info"

    MESSAGES_PAGE_SIZE: int = 50
    MESSAGES_MAX_PAGE_SIZE: int = 200

    CONVERSATIONS_PAGE_SIZE: int = 50
    CONVERSATIONS_MAX_PAGE_SIZE: int = 100

    WS_HEARTBEAT_SECONDS: int = 30

    # local: single instance, in-process delivery
    # redis: Pub/Sub relay so connections on other instances get the push too
    FANOUT_BACKEND: Literal["local", "redis"] = "redis"
    REDIS_PUBSUB_CHANNEL: str = "dm.fanout"

    CONNECTION_EVENTS_STREAM: str = "social.events"
    CONNECTION_EVENTS_GROUP: str = "dm-service"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
