"""Sync audit log model."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncLog(SQLModel, table=True):
    """Records each delivery pass over the local queue for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: Optional[str] = Field(default=None, index=True)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "partial", "error", "skipped"
    attempted: int = 0
    confirmed: int = 0
    failed: int = 0
    abandoned: int = 0
    error_message: Optional[str] = None
