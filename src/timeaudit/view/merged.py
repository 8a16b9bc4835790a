"""
Merged activity view: remote ground truth plus not-yet-confirmed local entries.

Local entries whose local id (or, once confirmed, remote id) already appears
in the remote result are dropped, so one logical entry never renders twice.
Neither input is mutated.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from timeaudit.models.activity import (
    MAX_RETRIES,
    ActivityStatus,
    DateRange,
    MergedEntry,
    PendingActivity,
    RemoteActivity,
)
from timeaudit.remote.base import ActivityStore, RemoteStoreError
from timeaudit.storage.pending_queue import PendingActivityQueue

logger = logging.getLogger(__name__)


@dataclass
class MergedView:
    entries: List[MergedEntry] = field(default_factory=list)
    remote_error: Optional[str] = None

    @property
    def remote_available(self) -> bool:
        return self.remote_error is None


def merge_entries(
    remote: Iterable[RemoteActivity],
    local: Iterable[PendingActivity],
    date_range: DateRange,
    *,
    owner_id: Optional[str] = None,
    max_retries: int = MAX_RETRIES,
) -> List[MergedEntry]:
    """
    Combine remote and local records into one list sorted by logged_at, newest first.

    Args:
        remote: Records returned by the remote query for `date_range`.
        local: Every record in the local queue.
        date_range: Only local records logged inside this range are kept.
        owner_id: If given, local records of other owners are ignored.
        max_retries: Ceiling used to flag exhausted local records.
    """
    remote = list(remote)
    remote_ids = {r.id for r in remote}

    entries = [
        MergedEntry(
            id=r.id,
            owner_id=r.owner_id,
            text=r.text,
            logged_at=r.logged_at,
            status=ActivityStatus.CONFIRMED,
        )
        for r in remote
    ]
    for p in local:
        if owner_id is not None and p.owner_id != owner_id:
            continue
        if p.logged_at not in date_range:
            continue
        if p.local_id in remote_ids or (p.remote_id and p.remote_id in remote_ids):
            continue
        entries.append(
            MergedEntry(
                id=p.local_id,
                owner_id=p.owner_id,
                text=p.text,
                logged_at=p.logged_at,
                status=p.status,
                is_local=True,
                retry_count=p.retry_count,
                exhausted=p.is_exhausted(max_retries),
            )
        )

    entries.sort(key=lambda e: e.logged_at, reverse=True)
    return entries


async def build_merged_view(
    store: ActivityStore,
    queue: PendingActivityQueue,
    owner_id: str,
    date_range: DateRange,
) -> MergedView:
    """
    Fetch remote records for the range and merge in the local queue.

    If the remote query fails the view degrades to local records only and
    carries the error, so an offline client still shows what it has.
    """
    remote_error = None
    try:
        remote = await store.query(owner_id, date_range)
    except RemoteStoreError as exc:
        logger.warning("Remote query failed, showing local entries only: %s", exc)
        remote, remote_error = [], str(exc)

    entries = merge_entries(
        remote,
        queue.list_all(),
        date_range,
        owner_id=owner_id,
        max_retries=queue.max_retries,
    )
    return MergedView(entries=entries, remote_error=remote_error)
