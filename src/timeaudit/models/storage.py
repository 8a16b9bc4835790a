"""Named key/value slot persisted in the local client database."""
from datetime import datetime

from sqlmodel import Field, SQLModel


class StorageSlot(SQLModel, table=True):
    name: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=datetime.utcnow)
