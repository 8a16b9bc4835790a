"""Activity submission, merged listing and export routes."""
import io
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from timeaudit.api.deps import get_owner, get_synchronizer
from timeaudit.models.activity import MergedEntry, PendingActivity
from timeaudit.services import get_timezone
from timeaudit.storage.pending_queue import InvalidActivityError
from timeaudit.storage.slots import StorageWriteError
from timeaudit.sync.synchronizer import NotAuthenticatedError
from timeaudit.view.days import day_range, days_range, latest_text
from timeaudit.view.export import build_workbook
from timeaudit.view.merged import build_merged_view

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ActivityCreate(BaseModel):
    text: str
    logged_at: Optional[datetime] = None  # backdating; defaults to now


class SubmitResponse(BaseModel):
    record: PendingActivity
    delivered: bool
    message: str


class DayViewResponse(BaseModel):
    day: date
    entries: List[MergedEntry]
    remote_available: bool
    latest_text: Optional[str] = None


@router.post("/", response_model=SubmitResponse, status_code=201)
async def submit_activity(request: ActivityCreate, synchronizer=Depends(get_synchronizer)):
    """
    Queue an activity locally and try to deliver it.

    A delivery failure is not an error: the entry is saved locally and retried.
    """
    try:
        result = await synchronizer.submit(request.text, logged_at=request.logged_at)
    except InvalidActivityError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    except StorageWriteError as exc:
        raise HTTPException(
            status_code=507,
            detail=f"Could not save locally, the entry is not stored: {exc}",
        )
    return SubmitResponse(
        record=result.record, delivered=result.delivered, message=result.message
    )


@router.get("/", response_model=DayViewResponse)
async def list_day(
    day: Optional[date] = None,
    owner: str = Depends(get_owner),
    synchronizer=Depends(get_synchronizer),
):
    """Merged remote + local entries for one day (default: today), newest first."""
    tz = get_timezone()
    day = day or datetime.now(tz).date()
    view = await build_merged_view(
        synchronizer.store, synchronizer.queue, owner, day_range(day, tz)
    )
    return DayViewResponse(
        day=day,
        entries=view.entries,
        remote_available=view.remote_available,
        latest_text=latest_text(view.entries),
    )


@router.get("/export")
async def export_activities(
    days: int = 7,
    owner: str = Depends(get_owner),
    synchronizer=Depends(get_synchronizer),
):
    """Download the last `days` days as an Excel workbook (one sheet per day)."""
    tz = get_timezone()
    today = datetime.now(tz).date()
    view = await build_merged_view(
        synchronizer.store, synchronizer.queue, owner, days_range(today, days, tz)
    )
    buf = io.BytesIO()
    build_workbook(view.entries, tz, today).save(buf)
    buf.seek(0)
    filename = f"time-audit-{today.isoformat()}.xlsx"
    return StreamingResponse(
        buf,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
