"""
Pydantic Schemas - Data Models

Defines the models passed between the store, the uploader and the orchestrator:
- PersonRow: illustrative payload stored in the SQLite `people` table
- Snapshot: a point-in-time physical copy of the store
- TransferConfig: immutable parameters of an FtpUploader
- TransferAttempt: outcome of one upload attempt

Usage:
    from snapship.utils.schemas import TransferConfig

    config = TransferConfig(host="127.0.0.1", port=21, max_retries=0)
    assert config.max_retries == 1
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, SecretStr, field_validator

# (dl_total, dl_now, ul_total, ul_now)
ProgressSink = Callable[[int, int, int, int], None]


def utc_timestamp() -> str:
    """Current UTC time as `YYYY-MM-DDTHH:MM:SSZ`."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class PersonRow(BaseModel):
    """One row of the `people` table."""

    first_name: str = Field(..., min_length=1, description="First name")
    last_name: str = Field(..., min_length=1, description="Last name")
    email: EmailStr = Field(..., description="Derived email address")
    created_at: str = Field(default_factory=utc_timestamp, description="ISO-8601 UTC timestamp")

    @classmethod
    def derive(cls, first_name: str, last_name: str, suffix: int) -> "PersonRow":
        """Build a row whose email is derived from the names."""
        email = f"{first_name}.{last_name}{suffix}@example.com".lower()
        return cls(first_name=first_name, last_name=last_name, email=email)


class Snapshot(BaseModel):
    """A byte-for-byte copy of the store materialized as a single file."""

    model_config = ConfigDict(frozen=True)

    path: Path
    created_at: datetime
    size_bytes: int = Field(..., ge=0)


class TransferAttempt(BaseModel):
    """Outcome of one connect-transfer-close cycle."""

    number: int = Field(..., ge=1, description="1-based attempt index")
    succeeded: bool = False
    error: Optional[str] = None


class TransferConfig(BaseModel):
    """Immutable parameters for an FtpUploader.

    `max_retries` is the total number of attempts; values below 1 are
    normalized to 1 so at least one attempt always happens.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    port: int = Field(default=21, le=65535)
    user: str = Field(default="")
    password: SecretStr = Field(default=SecretStr(""))
    ssl_verify: bool = Field(default=True)
    use_tls: bool = Field(default=True)
    timeout: float = Field(default=30, gt=0)
    max_retries: int = Field(default=3)
    verbose: bool = Field(default=False)
    progress_sink: Optional[ProgressSink] = Field(default=None, exclude=True)

    @field_validator("max_retries")
    @classmethod
    def normalize_max_retries(cls, v: int) -> int:
        """At least one attempt always occurs."""
        return max(1, v)
