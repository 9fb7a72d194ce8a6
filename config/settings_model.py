import logging
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration settings using Pydantic Settings.
    Reads from environment variables and provides type safety and validation.
    """

    # ─────────────────────────────────────────────────────────────────────────────
    # Inbound Listener
    # ─────────────────────────────────────────────────────────────────────────────
    PORT: int = Field(default=8000, ge=0, le=65535, description="Inbound listener port (0 = ephemeral)")
    LISTEN_ADDR: str = "0.0.0.0"
    ENABLE_PROXY_PROTOCOL: bool = True
    REQUEST_TIMEOUT: float = Field(default=15.0, gt=0)

    # ─────────────────────────────────────────────────────────────────────────────
    # Remote Targets
    # ─────────────────────────────────────────────────────────────────────────────
    REMOTE_ADDR: str = Field(default="", description="Comma-separated remote hostnames or addresses")
    REMOTE_PORT: int = Field(default=8000, ge=1, le=65535)
    REMOTE_PATH: str = "/ping"
    AVAILABILITY_ZONE: str = ""

    # ─────────────────────────────────────────────────────────────────────────────
    # Prober
    # ─────────────────────────────────────────────────────────────────────────────
    PROBE_INTERVAL: float = Field(default=1.0, gt=0, description="Seconds between probes")
    PROBE_TIMEOUT: float = Field(default=10.0, gt=0)
    PROBE_KEEP_ALIVE: bool = True
    PROBE_IDLE_CONN_TIMEOUT: float = Field(default=60.0, gt=0)

    # ─────────────────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────────────────
    ENABLE_METRICS: bool = True
    METRICS_ADDR: str = "0.0.0.0"
    METRICS_PORT: int = Field(default=8001, ge=0, le=65535)
    METRICS_NAMESPACE: str = Field(default="payments", pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")

    # ─────────────────────────────────────────────────────────────────────────────
    # Resource Limits
    # ─────────────────────────────────────────────────────────────────────────────
    MAX_WORKER_THREADS: int = Field(default=4, ge=1)
    SHUTDOWN_TIMEOUT_SECONDS: float = Field(default=5.0, ge=0)

    # ─────────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("REMOTE_PATH")
    @classmethod
    def _check_remote_path(cls, value: str) -> str:
        if not value.startswith("/"):
            return "/" + value
        return value

    @property
    def remote_hosts(self) -> List[str]:
        """Configured remote hosts, blanks dropped."""
        return [host.strip() for host in self.REMOTE_ADDR.split(",") if host.strip()]
