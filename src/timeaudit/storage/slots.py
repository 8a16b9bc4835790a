"""
Named-slot persistence for client-side state.

A slot holds one opaque string value (the queue stores a JSON array in it).
Backends must make `write` durable before returning and must raise
StorageWriteError rather than dropping a write.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from timeaudit.models.storage import StorageSlot

logger = logging.getLogger(__name__)


# ── Exceptions ────────────────────────────────────────────────────────────────

class StorageWriteError(RuntimeError):
    """Raised when a slot could not be persisted (disk full, locked DB, ...)."""


class StorageReadError(RuntimeError):
    """Raised when a slot exists but could not be read back."""


# ── Backends ──────────────────────────────────────────────────────────────────

class SlotStore(Protocol):
    def read(self, name: str) -> Optional[str]: ...

    def write(self, name: str, value: str) -> None: ...

    def delete(self, name: str) -> None: ...


class MemorySlotStore:
    """Process-local slots. Nothing survives a restart; used for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._slots: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def read(self, name: str) -> Optional[str]:
        with self._lock:
            return self._slots.get(name)

    def write(self, name: str, value: str) -> None:
        with self._lock:
            self._slots[name] = value

    def delete(self, name: str) -> None:
        with self._lock:
            self._slots.pop(name, None)


class SqlSlotStore:
    """Slots stored as rows of the `storageslot` table in the local database."""

    def __init__(self, engine):
        self.engine = engine

    def read(self, name: str) -> Optional[str]:
        try:
            with Session(self.engine) as s:
                slot = s.get(StorageSlot, name)
                return slot.value if slot else None
        except SQLAlchemyError as exc:
            raise StorageReadError(f"Could not read slot {name!r}: {exc}") from exc

    def write(self, name: str, value: str) -> None:
        try:
            with Session(self.engine) as s:
                slot = s.get(StorageSlot, name)
                if slot is None:
                    slot = StorageSlot(name=name, value=value)
                else:
                    slot.value = value
                    slot.updated_at = datetime.utcnow()
                s.add(slot)
                s.commit()
        except SQLAlchemyError as exc:
            logger.error("Slot write failed for %s: %s", name, exc)
            raise StorageWriteError(f"Could not write slot {name!r}: {exc}") from exc

    def delete(self, name: str) -> None:
        try:
            with Session(self.engine) as s:
                slot = s.get(StorageSlot, name)
                if slot is not None:
                    s.delete(slot)
                    s.commit()
        except SQLAlchemyError as exc:
            raise StorageWriteError(f"Could not delete slot {name!r}: {exc}") from exc
