"""Activity data models: locally queued entries, remote rows, and merged view items."""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from sqlmodel import Field, SQLModel

MAX_RETRIES = 3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ActivityStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PendingActivity(BaseModel):
    """
    One activity entry held in the local queue until the remote store confirms it.

    Serialized with camelCase aliases so the persisted slot layout is
    ``{localId, ownerId, text, loggedAt, createdAt, status, retryCount}``, plus
    ``remoteId`` once the remote store has assigned one.
    """

    local_id: str = PydanticField(alias="localId")
    owner_id: str = PydanticField(alias="ownerId")
    text: str
    logged_at: datetime = PydanticField(alias="loggedAt")
    created_at: datetime = PydanticField(alias="createdAt")
    status: ActivityStatus = ActivityStatus.PENDING
    retry_count: int = PydanticField(default=0, alias="retryCount", ge=0)
    remote_id: Optional[str] = PydanticField(default=None, alias="remoteId")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("logged_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def is_exhausted(self, max_retries: int = MAX_RETRIES) -> bool:
        """True once a failed record has used up its delivery attempts."""
        return self.status == ActivityStatus.FAILED and self.retry_count >= max_retries


class RemoteActivity(BaseModel):
    """Read-only view of an activity the remote store has durably saved."""

    id: str
    owner_id: str
    text: str
    logged_at: datetime

    @field_validator("logged_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ActivityRow(SQLModel, table=True):
    """Server-side row for the self-hosted SQL backend (mirrors the hosted `activities` table)."""

    __tablename__ = "activities"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    activity_text: str
    logged_at: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=utc_now)


class MergedEntry(BaseModel):
    """One display item produced by the merged view."""

    id: str
    owner_id: str
    text: str
    logged_at: datetime
    status: ActivityStatus
    is_local: bool = False
    retry_count: int = 0
    exhausted: bool = False  # failed and no longer retried


@dataclass(frozen=True)
class DateRange:
    """Half-open interval [start, end) of aware datetimes."""

    start: datetime
    end: datetime

    def __contains__(self, moment: datetime) -> bool:
        moment = ensure_utc(moment)
        return self.start <= moment < self.end


def text_or_none(value: Optional[str]) -> Optional[str]:
    """Return the stripped text, or None when nothing is left after trimming."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
