"""
ActivitySynchronizer: moves activity entries from the local queue to the remote store.

Flow for one submission:
  1. Validate and enqueue locally (status="pending"); this is durable before
     any network call starts.
  2. Attempt one remote insert.
  3. Success -> mark_confirmed. Any failure -> mark_failed and report
     "saved locally, will retry" instead of an error.

`sync_pending` re-attempts every syncable record in insertion order, each
independently. A per-record in-flight set prevents the same local id from
being delivered twice by overlapping passes (submit vs. timer).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Set

from sqlmodel import Session

from timeaudit.models.activity import (
    ActivityStatus,
    PendingActivity,
    RemoteActivity,
    text_or_none,
)
from timeaudit.models.sync import SyncLog
from timeaudit.remote.base import ActivityStore, UserProvider
from timeaudit.storage.pending_queue import (
    CleanupResult,
    InvalidActivityError,
    PendingActivityQueue,
)

logger = logging.getLogger(__name__)

SAVED_MESSAGE = "Saved"
WILL_RETRY_MESSAGE = "Saved locally, will retry"


class NotAuthenticatedError(RuntimeError):
    """Raised when a submission has no owner and nobody is signed in."""


@dataclass
class SubmitResult:
    record: PendingActivity
    delivered: bool
    remote: Optional[RemoteActivity] = None
    error: Optional[str] = None

    @property
    def message(self) -> str:
        return SAVED_MESSAGE if self.delivered else WILL_RETRY_MESSAGE


@dataclass
class SyncReport:
    status: str = "success"  # "success", "partial", "error", "skipped"
    confirmed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    exhausted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    last_error: Optional[str] = None

    @property
    def attempted(self) -> int:
        return len(self.confirmed) + len(self.failed)


@dataclass
class _Delivery:
    record: PendingActivity
    delivered: bool
    remote: Optional[RemoteActivity] = None
    error: Optional[str] = None


class ActivitySynchronizer:
    """Drives delivery attempts and retries for one client's local queue."""

    def __init__(
        self,
        queue: PendingActivityQueue,
        store: ActivityStore,
        users: UserProvider,
        *,
        engine=None,
        on_abandoned: Optional[Callable[[PendingActivity], None]] = None,
    ):
        """
        Args:
            queue: The durable local queue.
            store: Remote ActivityStore (or AsyncMock in tests).
            users: Resolves the signed-in owner; None means "cannot sync now".
            engine: Optional local SQLAlchemy engine for SyncLog audit rows.
            on_abandoned: Called once per record that exhausts its retries.
        """
        self.queue = queue
        self.store = store
        self.users = users
        self.engine = engine
        self.on_abandoned = on_abandoned
        self._in_flight: Set[str] = set()

    # ── Public API ────────────────────────────────────────────────────────────

    def stage(
        self, text: str, owner_id: str, logged_at: Optional[datetime] = None
    ) -> PendingActivity:
        """Synchronous half of a submission: validate and persist locally."""
        return self.queue.enqueue(owner_id, text, logged_at)

    async def submit(
        self,
        text: str,
        owner_id: Optional[str] = None,
        logged_at: Optional[datetime] = None,
    ) -> SubmitResult:
        """
        Queue an entry locally, then try to deliver it once.

        Raises:
            InvalidActivityError: blank text (nothing is queued).
            NotAuthenticatedError: no owner given and nobody signed in.
            StorageWriteError: local durability could not be guaranteed.
        """
        if text_or_none(text) is None:
            raise InvalidActivityError("Activity text must not be empty")
        # No network before the local write: the owner comes from local state.
        owner = owner_id or self.users.cached_owner()
        if owner is None:
            raise NotAuthenticatedError("Not authenticated")

        record = self.stage(text, owner, logged_at)
        delivery = await self._deliver(record)
        if delivery is None:
            # Picked up by a concurrent pass; it owns the outcome.
            return SubmitResult(record=record, delivered=False)
        return SubmitResult(
            record=delivery.record,
            delivered=delivery.delivered,
            remote=delivery.remote,
            error=delivery.error,
        )

    async def sync_pending(self, owner_id: Optional[str] = None) -> SyncReport:
        """
        Attempt delivery of every syncable record owned by the signed-in user.

        Remote failures never propagate; they become `failed` transitions.
        A local write failure is recorded on the SyncLog and re-raised.
        """
        owner = owner_id or await self.users.current_owner()
        if owner is None:
            logger.info("No signed-in user; skipping sync pass")
            report = SyncReport(status="skipped")
            self._record_skipped()
            return report

        log = self._create_sync_log(owner)
        report = SyncReport()
        try:
            for record in self.queue.list_syncable():
                if record.owner_id != owner:
                    continue
                delivery = await self._deliver(record)
                if delivery is None:
                    report.skipped.append(record.local_id)
                elif delivery.delivered:
                    report.confirmed.append(record.local_id)
                else:
                    report.failed.append(record.local_id)
                    report.last_error = delivery.error
                    if delivery.record.is_exhausted(self.queue.max_retries):
                        report.exhausted.append(record.local_id)
        except Exception as exc:
            self._finish_sync_log(log, report, status="error", error_message=str(exc))
            raise

        if report.failed:
            report.status = "partial" if report.confirmed else "error"
        self._finish_sync_log(log, report, status=report.status, error_message=report.last_error)
        if report.attempted:
            logger.info(
                "Sync pass: %d confirmed, %d failed, %d exhausted",
                len(report.confirmed),
                len(report.failed),
                len(report.exhausted),
            )
        return report

    def cleanup(self) -> CleanupResult:
        """Age out confirmed records and drop exhausted ones from the local queue."""
        result = self.queue.cleanup()
        if result.removed:
            logger.info(
                "Queue cleanup removed %d confirmed and %d abandoned record(s)",
                len(result.removed_confirmed),
                len(result.abandoned),
            )
        return result

    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _deliver(self, record: PendingActivity) -> Optional[_Delivery]:
        """
        One delivery attempt for `record`. Returns None when the attempt was
        not made because another attempt owns it or it is already confirmed.
        """
        if record.local_id in self._in_flight:
            return None
        current = self.queue.get(record.local_id)
        if current is None or current.status == ActivityStatus.CONFIRMED:
            return None

        self._in_flight.add(record.local_id)
        try:
            try:
                remote = await self.store.insert(
                    current.owner_id, current.text, current.logged_at
                )
            except Exception as exc:
                updated = self.queue.mark_failed(current.local_id) or current
                logger.warning(
                    "Delivery of %s failed (attempt %d): %s",
                    current.local_id,
                    updated.retry_count,
                    exc,
                )
                if updated.is_exhausted(self.queue.max_retries):
                    self._abandon(updated)
                return _Delivery(record=updated, delivered=False, error=str(exc))

            updated = self.queue.mark_confirmed(current.local_id, remote.id) or current
            return _Delivery(record=updated, delivered=True, remote=remote)
        finally:
            self._in_flight.discard(record.local_id)

    def _abandon(self, record: PendingActivity) -> None:
        logger.warning(
            "Giving up on %s after %d attempts; it will be dropped at next cleanup",
            record.local_id,
            record.retry_count,
        )
        if self.on_abandoned is not None:
            self.on_abandoned(record)

    def _create_sync_log(self, owner_id: str) -> Optional[SyncLog]:
        if self.engine is None:
            return None
        log = SyncLog(owner_id=owner_id, started_at=datetime.utcnow(), status="running")
        with Session(self.engine) as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def _finish_sync_log(
        self,
        log: Optional[SyncLog],
        report: SyncReport,
        *,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        if log is None:
            return
        with Session(self.engine) as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = status
            db_log.finished_at = datetime.utcnow()
            db_log.attempted = report.attempted
            db_log.confirmed = len(report.confirmed)
            db_log.failed = len(report.failed)
            db_log.abandoned = len(report.exhausted)
            db_log.error_message = error_message
            s.add(db_log)
            s.commit()

    def _record_skipped(self) -> None:
        if self.engine is None:
            return
        now = datetime.utcnow()
        with Session(self.engine) as s:
            s.add(SyncLog(started_at=now, finished_at=now, status="skipped"))
            s.commit()
