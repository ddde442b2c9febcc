"""
Application Configuration using Pydantic Settings

Loads process-level defaults from environment variables (prefix ``TPCBENCH_``)
or a ``.env`` file. Command-line flags take precedence over these values.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="TPCBENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # Connection Defaults
    # ========================================================================
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "test"

    # Database used for the auxiliary connection that creates a missing
    # benchmark database. It must exist on every server.
    MAINTENANCE_DATABASE: str = "postgres"

    # ========================================================================
    # Connection Pool Settings
    # ========================================================================
    POOL_MIN_SIZE: int = 1
    POOL_COMMAND_TIMEOUT: float = 300.0
    POOL_CONNECT_TIMEOUT: float = 30.0
    POOL_STATEMENT_CACHE_SIZE: int = 100

    # ========================================================================
    # Shutdown Settings
    # ========================================================================
    # Bounded wait after the first termination signal before forcing exit.
    SHUTDOWN_GRACE_SECONDS: float = 10.0

    # ========================================================================
    # Workload Output Settings
    # ========================================================================
    OUTPUT_INTERVAL_SECONDS: float = 10.0

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        return str(v or "INFO").strip().upper()

    @field_validator("SHUTDOWN_GRACE_SECONDS")
    @classmethod
    def _positive_grace(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("SHUTDOWN_GRACE_SECONDS must be positive")
        return v


# Create global settings instance
settings = Settings()
