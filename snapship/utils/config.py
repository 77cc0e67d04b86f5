"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from snapship.utils.config import get_settings

    settings = get_settings()
    uploader = FtpUploader(settings.transfer_config())

Command-line values are passed as keyword arguments and take priority over
the environment:

    settings = Settings(FTP_HOST="ftp.example.com", ROW_COUNT=10)
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from snapship.utils.schemas import ProgressSink, TransferConfig

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # SQLite Configuration
    SQLITE_PREFIX: str = Field(default="data/snapship")
    ROW_COUNT: int = Field(default=100, gt=0)
    ROW_SEED: Optional[int] = Field(default=None)
    SQL_DUMP_PATH: Optional[str] = Field(default=None)

    # Online backup tuning
    BACKUP_STEP_PAGES: int = Field(default=1024, gt=0)
    BACKUP_BUSY_SLEEP_MS: int = Field(default=50, ge=0)
    BACKUP_MAX_BUSY_RETRIES: int = Field(default=200, gt=0)

    # FTP Configuration
    FTP_HOST: str = Field(default="", validate_default=True)
    FTP_PORT: int = Field(default=21, ge=1, le=65535)
    FTP_USERNAME: str = Field(default="")
    FTP_PASSWORD: SecretStr = Field(default=SecretStr(""))
    FTP_REMOTE_DIR: str = Field(default="")
    FTP_TIMEOUT: float = Field(default=30, gt=0)
    FTP_RETRIES: int = Field(default=3, ge=0)
    FTP_SSL_VERIFY: bool = Field(default=True)
    FTP_USE_TLS: bool = Field(default=True)
    FTP_VERBOSE: bool = Field(default=False)

    # Scheduler Configuration
    BACKUP_SCHEDULE_CRON: str = Field(default="0 3 * * *")
    RUN_ONCE: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="info")
    LOG_FORMAT: str = Field(default="text")
    LOG_DIR: str = Field(default="logs")
    LOG_MAX_BYTES: int = Field(default=0, ge=0)

    @field_validator("FTP_HOST")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """FTP host must be set and non-blank."""
        if not v or not v.strip():
            raise ValueError("FTP_HOST is not configured")
        return v.strip()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"invalid log level: {v} (expected one of {', '.join(LOG_LEVELS)})")
        return level

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in ("text", "json"):
            raise ValueError(f"invalid log format: {v} (expected 'text' or 'json')")
        return fmt

    @property
    def log_level_value(self) -> int:
        return LOG_LEVELS[self.LOG_LEVEL]

    def transfer_config(self, progress_sink: Optional[ProgressSink] = None) -> TransferConfig:
        """Build the immutable uploader configuration.

        Args:
            progress_sink: Optional callable receiving upload progress

        Returns:
            Frozen TransferConfig
        """
        return TransferConfig(
            host=self.FTP_HOST,
            port=self.FTP_PORT,
            user=self.FTP_USERNAME,
            password=self.FTP_PASSWORD,
            ssl_verify=self.FTP_SSL_VERIFY,
            use_tls=self.FTP_USE_TLS,
            timeout=self.FTP_TIMEOUT,
            max_retries=self.FTP_RETRIES,
            verbose=self.FTP_VERBOSE,
            progress_sink=progress_sink,
        )

    def masked_password(self) -> str:
        """Password rendered for logs."""
        secret = self.FTP_PASSWORD.get_secret_value()
        return "*" * len(secret) if secret else "<empty>"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance

    Raises:
        pydantic.ValidationError: If the environment holds invalid values
    """
    return Settings()
