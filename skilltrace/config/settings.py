from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Analysis backend (commit listing, analysis engine, result snapshots)
    backend_url: str = "http://localhost:5000"

    # HTTP client timeouts (seconds)
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 5.0
    # Read timeout on the analysis stream. None = wait for the next message forever.
    stream_idle_timeout_seconds: float | None = None

    # Transport used when the start response doesn't name one
    default_transport: Literal["stream", "poll"] = "stream"
    # Status polling interval
    poll_interval_seconds: float = 3.0
    # Delay between progress == 100 and the snapshot re-fetch (lets the backend persist results)
    completion_settle_seconds: float = 0.5

    # Commit listing: number of commits scanned when the caller gives no limit
    default_commit_limit: int | None = 30

    # TTL for cached commit listings and history timestamps
    cache_ttl_seconds: int = 300

    # Application
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:5173"]


settings = Settings()
