"""Configuration for the task board service."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Task board service settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TASKBOARD_",
        case_sensitive=False,
        extra="ignore",
    )

    # Service info
    service_name: str = "taskboard"
    service_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 3001
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Notification store
    data_dir: str = Field(
        default=".taskboard",
        description="Directory holding the notification document and its lock file",
    )
    lock_timeout_seconds: float = Field(
        default=10.0,
        description="Seconds to wait for the store lock before failing",
    )

    # Notification stream
    stream_queue_size: int = Field(
        default=100,
        description="Events buffered per stream listener before the oldest is dropped",
    )
    stream_keepalive_seconds: float = Field(
        default=30.0,
        description="Interval between keepalive pings on idle streams",
    )

    # Agent registry
    registry_snapshot_path: str | None = Field(
        default=None,
        description="Optional JSON file the registry dumps itself to for diagnostics",
    )
    agent_stale_after_seconds: int = Field(
        default=0,
        description="Mark agents offline after this many seconds without heartbeat (0 disables)",
    )
    agent_sweep_interval_seconds: int = Field(
        default=30,
        description="Interval between stale-agent sweeps",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
