"""
Configuration management for Command Center.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Command Center")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Origin allowed by CORS for the dashboard",
    )

    # Storage
    store_backend: Literal["memory", "sql"] = Field(default="memory")
    database_url: str = Field(default="sqlite:///./command_center.db")
    seed_demo_data: bool = Field(default=False)

    # Security
    secret_key: str = Field(default="change-me-in-production")
    access_token_expire_minutes: int = Field(default=60 * 24)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    # Execution engine
    execution_start_delay_seconds: float = Field(default=1.0, ge=0)
    execution_step_delay_seconds: float = Field(default=0.5, ge=0)
    execution_steps: int = Field(default=10, ge=1, le=100)
    execution_timeout_seconds: float = Field(
        default=3600,
        gt=0,
        description="Upper bound on a single execution run before it is failed",
    )
    max_executions: int = Field(
        default=1000,
        ge=1,
        description="Registry cap; oldest finished executions are evicted first",
    )
    max_log_entries: int = Field(default=500, ge=10)

    # Slack
    slack_timeout_seconds: float = Field(default=10.0, gt=0)
    slack_footer: str = Field(default="Command Center")

    # Optional default webhook for projects created without one
    default_slack_webhook_url: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
