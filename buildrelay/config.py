"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Orchestrator settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="structlog renderer"
    )

    # Coordination Store (Firebase Realtime Database)
    store_url: Optional[str] = Field(
        default=None,
        description="Realtime database URL, e.g. https://<project>.firebaseio.com",
    )
    store_auth_token: Optional[str] = Field(
        default=None, description="Database secret or ID token passed as ?auth="
    )
    store_timeout_s: float = Field(
        default=30.0, description="Store request timeout in seconds"
    )

    # Agent discovery
    agents_path: str = Field(
        default="agents", description="Registry path of compiler agents"
    )
    agent_liveness_window_s: float = Field(
        default=120.0,
        description="An online agent is live if seen within this many seconds",
    )
    verify_store_connection: bool = Field(
        default=True,
        description="Write and remove a health_check probe before agent discovery",
    )

    # Status monitoring
    ack_timeout_s: float = Field(
        default=180.0,
        description="Seconds to wait for an agent acknowledgment before timing out",
    )
    status_transport: Literal["push", "poll"] = Field(
        default="push",
        description="push = store subscription, poll = periodic reads",
    )
    status_poll_interval_s: float = Field(
        default=3.0, description="Polling interval when status_transport=poll"
    )

    # Retry
    max_auto_retries: int = Field(
        default=1,
        ge=0,
        description="Automatic fix-and-recompile cycles after a remote build failure",
    )

    # Artifacts
    artifact_preference: list[str] = Field(
        default=["bin", "hex", "elf"],
        description="Artifact file kinds in order of preference",
    )
    download_timeout_s: float = Field(
        default=60.0, description="External artifact download timeout in seconds"
    )

    # Request defaults
    default_board: str = Field(
        default="esp32:esp32:esp32", description="FQBN used when none is known"
    )
    client_user_id: str = Field(
        default="user_123", description="userId written into request metadata"
    )
    client_source: str = Field(
        default="web-app", description="source written into request metadata"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
