"""
Integration tests for SqlActivityStore against in-memory SQLite, and for the
full submit -> sync -> merged view loop on top of it.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import NOW, OWNER
from timeaudit.models.activity import ActivityStatus
from timeaudit.remote.base import StaticUserProvider
from timeaudit.remote.sql_store import SqlActivityStore
from timeaudit.sync.synchronizer import ActivitySynchronizer
from timeaudit.view.days import day_range
from timeaudit.view.merged import build_merged_view

TODAY = day_range(date(2025, 1, 15), timezone.utc)


class TestSqlActivityStore:
    @pytest.fixture
    def store(self, engine):
        return SqlActivityStore(engine)

    @pytest.mark.asyncio
    async def test_insert_assigns_server_id(self, store):
        remote = await store.insert(OWNER, "Wrote tests", NOW)
        assert remote.id
        assert not remote.id.startswith("local_")
        assert remote.logged_at == NOW

    @pytest.mark.asyncio
    async def test_query_returns_range_newest_first(self, store):
        await store.insert(OWNER, "morning", NOW.replace(hour=8))
        await store.insert(OWNER, "evening", NOW.replace(hour=20))
        await store.insert(OWNER, "yesterday", NOW - timedelta(days=1))

        rows = await store.query(OWNER, TODAY)

        assert [r.text for r in rows] == ["evening", "morning"]

    @pytest.mark.asyncio
    async def test_query_filters_owner(self, store):
        await store.insert("user-2", "not mine", NOW)
        assert await store.query(OWNER, TODAY) == []

    @pytest.mark.asyncio
    async def test_non_utc_input_stored_as_utc(self, store):
        plus_two = timezone(timedelta(hours=2))
        await store.insert(OWNER, "late", datetime(2025, 1, 16, 1, 0, tzinfo=plus_two))
        rows = await store.query(OWNER, TODAY)
        assert [r.logged_at for r in rows] == [datetime(2025, 1, 15, 23, 0, tzinfo=timezone.utc)]


class TestOfflineRoundTrip:
    @pytest.mark.asyncio
    async def test_offline_entry_delivered_on_retry_and_shown_once(self, engine, queue):
        store = SqlActivityStore(engine)
        sync = ActivitySynchronizer(queue, store, StaticUserProvider(OWNER))

        # Offline: the remote insert raises, entry stays local
        real_insert = store.insert

        async def offline(*args):
            raise ConnectionError("offline")

        store.insert = offline
        result = await sync.submit("Wrote tests")
        assert result.delivered is False

        view = await build_merged_view(store, queue, OWNER, TODAY)
        assert [(e.text, e.status) for e in view.entries] == [
            ("Wrote tests", ActivityStatus.FAILED)
        ]

        # Back online: the timer pass delivers it
        store.insert = real_insert
        report = await sync.sync_pending()
        assert report.confirmed == [result.record.local_id]

        view = await build_merged_view(store, queue, OWNER, TODAY)
        assert len(view.entries) == 1
        assert view.entries[0].is_local is False
        assert view.entries[0].status == ActivityStatus.CONFIRMED
