"""
Self-hosted activity backend on a SQL database via SQLModel.

Session work is synchronous; like the other clients it is run in the default
executor so the event loop is never blocked.
"""
import asyncio
from datetime import datetime
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from timeaudit.models.activity import ActivityRow, DateRange, RemoteActivity, ensure_utc
from timeaudit.remote.base import RemoteStoreError


class SqlActivityStore:
    """ActivityStore writing `ActivityRow`s; ids are assigned here, never by the client."""

    def __init__(self, engine):
        self.engine = engine

    async def insert(self, owner_id: str, text: str, logged_at: datetime) -> RemoteActivity:
        return await self._run(self._insert_sync, owner_id, text, logged_at)

    async def query(self, owner_id: str, date_range: DateRange) -> List[RemoteActivity]:
        return await self._run(self._query_sync, owner_id, date_range)

    async def _run(self, fn, *args):
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, lambda: fn(*args))
        except SQLAlchemyError as exc:
            raise RemoteStoreError(str(exc)) from exc

    def _insert_sync(self, owner_id: str, text: str, logged_at: datetime) -> RemoteActivity:
        # SQLite keeps wall time only, so everything is stored as UTC
        row = ActivityRow(
            user_id=owner_id, activity_text=text, logged_at=ensure_utc(logged_at)
        )
        with Session(self.engine) as s:
            s.add(row)
            s.commit()
            s.refresh(row)
            return _to_remote(row)

    def _query_sync(self, owner_id: str, date_range: DateRange) -> List[RemoteActivity]:
        with Session(self.engine) as s:
            rows = s.exec(
                select(ActivityRow)
                .where(ActivityRow.user_id == owner_id)
                .where(ActivityRow.logged_at >= ensure_utc(date_range.start))
                .where(ActivityRow.logged_at < ensure_utc(date_range.end))
                .order_by(ActivityRow.logged_at.desc())
            ).all()
            return [_to_remote(row) for row in rows]


def _to_remote(row: ActivityRow) -> RemoteActivity:
    return RemoteActivity(
        id=row.id,
        owner_id=row.user_id,
        text=row.activity_text,
        logged_at=row.logged_at,
    )
