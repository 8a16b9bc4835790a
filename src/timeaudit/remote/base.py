"""Collaborator interfaces for the remote activity store and the signed-in user."""
from datetime import datetime
from typing import List, Optional, Protocol

from timeaudit.models.activity import DateRange, RemoteActivity


class RemoteStoreError(RuntimeError):
    """Raised for any failed remote insert or query (network, HTTP status, bad payload)."""


class ActivityStore(Protocol):
    async def insert(self, owner_id: str, text: str, logged_at: datetime) -> RemoteActivity: ...

    async def query(self, owner_id: str, date_range: DateRange) -> List[RemoteActivity]: ...


class UserProvider(Protocol):
    def cached_owner(self) -> Optional[str]: ...

    async def current_owner(self) -> Optional[str]: ...


class StaticUserProvider:
    """Single-user setup: the owner id comes straight from configuration."""

    def __init__(self, owner_id: Optional[str]):
        self.owner_id = owner_id or None

    def cached_owner(self) -> Optional[str]:
        return self.owner_id

    async def current_owner(self) -> Optional[str]:
        return self.owner_id
