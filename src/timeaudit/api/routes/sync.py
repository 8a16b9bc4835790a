"""Sync trigger, status and local queue inspection routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from timeaudit.api.deps import get_synchronizer
from timeaudit.db.engine import get_session
from timeaudit.models.activity import PendingActivity
from timeaudit.models.sync import SyncLog

router = APIRouter()


class SyncStatusResponse(BaseModel):
    status: str
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    attempted: Optional[int]
    confirmed: Optional[int]
    failed: Optional[int]
    abandoned: Optional[int]
    error_message: Optional[str]


class QueueResponse(BaseModel):
    records: List[PendingActivity]
    syncable: int
    read_error: Optional[str] = None


async def _do_sync(synchronizer) -> None:
    """Background task: one delivery pass."""
    await synchronizer.sync_pending()


@router.post("/trigger")
async def trigger_sync(
    background_tasks: BackgroundTasks,
    synchronizer=Depends(get_synchronizer),
):
    """Run a delivery pass now. Returns immediately; the pass runs in background."""
    background_tasks.add_task(_do_sync, synchronizer)
    return {"message": "Sync started"}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(session: Session = Depends(get_session)):
    """Return the status of the most recent delivery pass."""
    log = session.exec(
        select(SyncLog).order_by(SyncLog.started_at.desc())
    ).first()
    if not log:
        return SyncStatusResponse(
            status="never_run",
            started_at=None,
            finished_at=None,
            attempted=None,
            confirmed=None,
            failed=None,
            abandoned=None,
            error_message=None,
        )
    return SyncStatusResponse(
        status=log.status,
        started_at=log.started_at,
        finished_at=log.finished_at,
        attempted=log.attempted,
        confirmed=log.confirmed,
        failed=log.failed,
        abandoned=log.abandoned,
        error_message=log.error_message,
    )


@router.get("/queue", response_model=QueueResponse)
def local_queue(synchronizer=Depends(get_synchronizer)):
    """Raw contents of the local queue, including confirmed and exhausted records."""
    queue = synchronizer.queue
    records = queue.list_all()
    return QueueResponse(
        records=records,
        syncable=len(queue.list_syncable()),
        read_error=queue.last_read_error,
    )
