"""
Configuration management for the Indexer Service.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .log import LOG_LEVELS


class Settings(BaseSettings):
    """
    Service configuration settings.

    Populated from CLI options; every field can also come from the
    environment or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Wallet
    mnemonic: str = Field(description="Ethereum wallet mnemonic")

    # Ethereum / Connext
    ethereum: str = Field(description="Ethereum node or provider URL")
    connext_messaging: Optional[str] = Field(
        default=None, description="Connext messaging URL"
    )
    connext_node: str = Field(description="Connext node URL")

    # Postgres
    postgres_host: Optional[str] = Field(default=None, description="Postgres host")
    postgres_port: int = Field(default=5432, ge=1, le=65535, description="Postgres port")
    postgres_username: Optional[str] = Field(default=None, description="Postgres username")
    postgres_password: Optional[str] = Field(default=None, description="Postgres password")
    postgres_database: str = Field(description="Postgres database name")

    # Overrides the postgres_* settings when set (sqlite:///... for local runs)
    database_url: Optional[str] = Field(default=None, description="SQLAlchemy database URL")

    # Status server
    port: int = Field(default=7600, ge=0, le=65535, description="Port to serve from")

    # Echo responder
    echo_delay_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Delay between an unlocked payment and sending it back",
    )
    echo_concurrency: int = Field(
        default=8, ge=1, description="Maximum number of payments sent back at once"
    )
    echo_queue_size: int = Field(
        default=0, ge=0, description="Maximum pending echoes (0 = unbounded)"
    )

    # Channel client
    event_poll_interval: float = Field(
        default=1.0, gt=0, description="Seconds between channel event polls"
    )
    http_timeout: float = Field(default=30.0, gt=0, description="Node request timeout")

    # Logging
    log_level: str = Field(default="info", description="debug, info, warning or error")
    json_logs: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @field_validator("mnemonic")
    @classmethod
    def _check_mnemonic(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("mnemonic must not be empty")
        return value

    @property
    def messaging_url(self) -> str:
        """Endpoint serving channel events (falls back to the node)."""
        return self.connext_messaging or self.connext_node
