"""
Durable local queue of activity entries awaiting remote confirmation.

The whole collection lives in one named slot as a JSON array. Every mutation
is read-modify-write on that array and runs under one re-entrant lock, so two
overlapping status transitions can never clobber each other.

Status transitions:
  pending   -> confirmed | failed
  failed    -> confirmed | failed (retry_count + 1)
  confirmed -> (terminal; removed only by age-based cleanup)
"""
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError

from timeaudit.models.activity import (
    MAX_RETRIES,
    ActivityStatus,
    PendingActivity,
    text_or_none,
    utc_now,
)
from timeaudit.storage.slots import SlotStore, StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)

DEFAULT_SLOT_NAME = "time_audit_pending_activities"
CONFIRMED_RETENTION = timedelta(hours=24)

_RECORDS = TypeAdapter(List[PendingActivity])

Clock = Callable[[], datetime]
IdFactory = Callable[[datetime], str]
Listener = Callable[[], None]


class InvalidActivityError(ValueError):
    """Raised for submissions that must never reach the queue (e.g. blank text)."""


def default_local_id(now: datetime) -> str:
    """`local_<epoch ms>_<random hex>`; the prefix keeps it disjoint from server UUIDs."""
    return f"local_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


@dataclass
class CleanupResult:
    removed_confirmed: List[PendingActivity] = field(default_factory=list)
    abandoned: List[PendingActivity] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return len(self.removed_confirmed) + len(self.abandoned)


class PendingActivityQueue:
    """Ordered, persistent set of PendingActivity records (oldest first)."""

    def __init__(
        self,
        slots: SlotStore,
        slot_name: str = DEFAULT_SLOT_NAME,
        *,
        clock: Clock = utc_now,
        id_factory: IdFactory = default_local_id,
        max_retries: int = MAX_RETRIES,
        retention: timedelta = CONFIRMED_RETENTION,
    ):
        """
        Args:
            slots: Slot backend holding the serialized queue.
            slot_name: Name of the slot; one queue per slot.
            clock: Returns the current aware datetime. Injected for tests.
            id_factory: Builds a fresh local id from the current time.
            max_retries: Failed records at or above this count are no longer synced.
            retention: How long confirmed records are kept for display.
        """
        self._slots = slots
        self.slot_name = slot_name
        self._clock = clock
        self._id_factory = id_factory
        self.max_retries = max_retries
        self.retention = retention
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self.last_read_error: Optional[str] = None

    # ── Writes ────────────────────────────────────────────────────────────────

    def enqueue(
        self,
        owner_id: str,
        text: str,
        logged_at: Optional[datetime] = None,
        *,
        local_id: Optional[str] = None,
    ) -> PendingActivity:
        """
        Append a new pending record and persist the queue before returning.

        Raises:
            InvalidActivityError: blank text, missing owner or bad timestamp.
            StorageWriteError: the slot could not be written; the record is
                not durable and the caller must tell the user.
        """
        cleaned = text_or_none(text)
        if cleaned is None:
            raise InvalidActivityError("Activity text must not be empty")
        if not owner_id:
            raise InvalidActivityError("An owner is required to queue an activity")
        if logged_at is not None and not isinstance(logged_at, datetime):
            raise InvalidActivityError(f"logged_at must be a datetime, got {logged_at!r}")

        now = self._clock()
        with self._lock:
            records = self._load(for_write=True)
            taken = {r.local_id for r in records}
            record_id = local_id or self._id_factory(now)
            while local_id is None and record_id in taken:
                record_id = self._id_factory(now)
            if record_id in taken:
                raise InvalidActivityError(f"Local id {record_id} is already queued")

            record = PendingActivity(
                local_id=record_id,
                owner_id=owner_id,
                text=cleaned,
                logged_at=logged_at or now,
                created_at=now,
            )
            records.append(record)
            self._save(records)
        self._notify()
        return record

    def mark_confirmed(
        self, local_id: str, remote_id: Optional[str] = None
    ) -> Optional[PendingActivity]:
        """
        Set status=confirmed, remembering the server id when known.
        No-op (returns None) if the record is gone.
        """
        with self._lock:
            records = self._load(for_write=True)
            record = _find(records, local_id)
            if record is None:
                return None
            if record.status == ActivityStatus.CONFIRMED:
                return record
            record.status = ActivityStatus.CONFIRMED
            record.remote_id = remote_id
            self._save(records)
        self._notify()
        return record

    def mark_failed(self, local_id: str) -> Optional[PendingActivity]:
        """Set status=failed and bump retry_count. No-op if the record is gone."""
        with self._lock:
            records = self._load(for_write=True)
            record = _find(records, local_id)
            if record is None:
                return None
            if record.status == ActivityStatus.CONFIRMED:
                logger.warning("Ignoring failure for already confirmed record %s", local_id)
                return record
            record.status = ActivityStatus.FAILED
            record.retry_count += 1
            self._save(records)
        self._notify()
        return record

    def cleanup(self) -> CleanupResult:
        """
        Drop confirmed records older than the retention window and failed
        records that exhausted their retries. Pending records are always kept.

        Exhausted records are returned in `abandoned` so callers can report
        the loss instead of it passing silently.
        """
        result = CleanupResult()
        cutoff = self._clock() - self.retention
        with self._lock:
            records = self._load(for_write=True)
            kept: List[PendingActivity] = []
            for record in records:
                if record.status == ActivityStatus.CONFIRMED and record.created_at <= cutoff:
                    result.removed_confirmed.append(record)
                elif record.is_exhausted(self.max_retries):
                    result.abandoned.append(record)
                else:
                    kept.append(record)
            if result.removed:
                self._save(kept)

        for record in result.abandoned:
            logger.warning(
                "Abandoning %s after %d failed deliveries: %r",
                record.local_id,
                record.retry_count,
                record.text,
            )
        if result.removed:
            self._notify()
        return result

    def clear(self) -> None:
        """Remove every record (debugging / sign-out)."""
        with self._lock:
            self._slots.delete(self.slot_name)
        self._notify()

    # ── Reads ─────────────────────────────────────────────────────────────────

    def list_syncable(self) -> List[PendingActivity]:
        """Pending records plus failed records still under the retry ceiling, oldest first."""
        with self._lock:
            return [
                r for r in self._load()
                if r.status == ActivityStatus.PENDING
                or (r.status == ActivityStatus.FAILED and r.retry_count < self.max_retries)
            ]

    def list_all(self) -> List[PendingActivity]:
        with self._lock:
            return self._load()

    def get(self, local_id: str) -> Optional[PendingActivity]:
        with self._lock:
            return _find(self._load(), local_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback fired after every persisted change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _load(self, for_write: bool = False) -> List[PendingActivity]:
        """
        Read the full collection. Unreadable or corrupt contents are treated
        as an empty queue; `last_read_error` records why.

        With `for_write`, an unreadable slot raises StorageWriteError instead:
        saving over it would drop records that are still stored there.
        """
        try:
            raw = self._slots.read(self.slot_name)
        except StorageReadError as exc:
            if for_write:
                self.last_read_error = str(exc)
                raise StorageWriteError(
                    f"Local queue unreadable, refusing to overwrite it: {exc}"
                ) from exc
            logger.error("Local queue unreadable, treating as empty: %s", exc)
            self.last_read_error = str(exc)
            return []

        if not raw:
            self.last_read_error = None
            return []

        try:
            records = _RECORDS.validate_json(raw)
        except ValidationError as exc:
            logger.error("Local queue is corrupt, treating as empty: %s", exc)
            self.last_read_error = f"corrupt queue data: {exc.error_count()} error(s)"
            self._preserve_corrupt(raw)
            return []

        self.last_read_error = None
        return records

    def _save(self, records: List[PendingActivity]) -> None:
        payload = _RECORDS.dump_json(records, by_alias=True).decode("utf-8")
        self._slots.write(self.slot_name, payload)

    def _preserve_corrupt(self, raw: str) -> None:
        backup = f"{self.slot_name}.corrupt"
        try:
            if self._slots.read(backup) != raw:
                self._slots.write(backup, raw)
        except (StorageReadError, StorageWriteError) as exc:
            logger.error("Could not back up corrupt queue to %s: %s", backup, exc)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Queue listener %r failed", listener)


def _find(records: List[PendingActivity], local_id: str) -> Optional[PendingActivity]:
    return next((r for r in records if r.local_id == local_id), None)
