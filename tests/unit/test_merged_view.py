"""Tests for the merged remote + local activity view."""
from datetime import date, timedelta, timezone

import pytest

from conftest import NOW, OWNER, make_store
from timeaudit.models.activity import ActivityStatus, RemoteActivity
from timeaudit.remote.base import RemoteStoreError
from timeaudit.view.days import day_range
from timeaudit.view.merged import build_merged_view, merge_entries

TODAY = day_range(date(2025, 1, 15), timezone.utc)


def remote(id_, text, hour, owner=OWNER):
    return RemoteActivity(
        id=id_, owner_id=owner, text=text, logged_at=NOW.replace(hour=hour)
    )


class TestMergeEntries:
    def test_confirmed_and_pending_same_day(self, queue):
        """One entry confirmed remotely, one still local: both shown, newest first."""
        pending = queue.enqueue(OWNER, "Reviewed PR", NOW.replace(hour=14))
        entries = merge_entries(
            [remote("srv-1", "Wrote tests", 9)], queue.list_all(), TODAY
        )

        assert [e.text for e in entries] == ["Reviewed PR", "Wrote tests"]
        assert [e.status for e in entries] == [
            ActivityStatus.PENDING,
            ActivityStatus.CONFIRMED,
        ]
        assert entries[0].id == pending.local_id
        assert entries[0].is_local is True
        assert entries[1].is_local is False

    def test_local_id_matching_remote_id_shown_once(self, queue):
        record = queue.enqueue(OWNER, "Wrote tests", NOW)
        entries = merge_entries(
            [remote(record.local_id, "Wrote tests", 12)], queue.list_all(), TODAY
        )
        assert len(entries) == 1
        assert entries[0].status == ActivityStatus.CONFIRMED
        assert entries[0].is_local is False

    def test_confirmed_local_with_known_remote_id_shown_once(self, queue):
        record = queue.enqueue(OWNER, "Wrote tests", NOW)
        queue.mark_confirmed(record.local_id, "srv-9")
        entries = merge_entries(
            [remote("srv-9", "Wrote tests", 12)], queue.list_all(), TODAY
        )
        assert [e.id for e in entries] == ["srv-9"]

    def test_confirmed_local_shown_when_remote_missing(self, queue):
        record = queue.enqueue(OWNER, "Wrote tests", NOW)
        queue.mark_confirmed(record.local_id, "srv-9")
        entries = merge_entries([], queue.list_all(), TODAY)
        assert [e.status for e in entries] == [ActivityStatus.CONFIRMED]

    def test_local_outside_range_excluded(self, queue):
        queue.enqueue(OWNER, "Yesterday", NOW - timedelta(days=1))
        queue.enqueue(OWNER, "Today", NOW)
        entries = merge_entries([], queue.list_all(), TODAY)
        assert [e.text for e in entries] == ["Today"]

    def test_range_end_is_exclusive(self, queue):
        queue.enqueue(OWNER, "Midnight", TODAY.end)
        assert merge_entries([], queue.list_all(), TODAY) == []

    def test_other_owner_excluded(self, queue):
        queue.enqueue("user-2", "Someone else", NOW)
        assert merge_entries([], queue.list_all(), TODAY, owner_id=OWNER) == []

    def test_failed_and_exhausted_tags(self, queue):
        retrying = queue.enqueue(OWNER, "Retrying", NOW.replace(hour=10))
        dead = queue.enqueue(OWNER, "Gave up", NOW.replace(hour=11))
        queue.mark_failed(retrying.local_id)
        for _ in range(3):
            queue.mark_failed(dead.local_id)

        by_text = {e.text: e for e in merge_entries([], queue.list_all(), TODAY)}

        assert by_text["Retrying"].status == ActivityStatus.FAILED
        assert by_text["Retrying"].exhausted is False
        assert by_text["Retrying"].retry_count == 1
        assert by_text["Gave up"].exhausted is True

    def test_inputs_not_mutated(self, queue):
        queue.enqueue(OWNER, "Reviewed PR", NOW)
        remote_rows = [remote("srv-1", "Wrote tests", 9)]
        local = queue.list_all()
        before = ([r.model_dump() for r in remote_rows], [p.model_dump() for p in local])

        merge_entries(remote_rows, local, TODAY)

        after = ([r.model_dump() for r in remote_rows], [p.model_dump() for p in local])
        assert before == after

    def test_sorted_newest_first(self):
        rows = [remote("a", "morning", 8), remote("b", "evening", 20), remote("c", "noon", 12)]
        entries = merge_entries(rows, [], TODAY)
        assert [e.text for e in entries] == ["evening", "noon", "morning"]


class TestBuildMergedView:
    @pytest.mark.asyncio
    async def test_queries_remote_for_range(self, queue):
        store = make_store(remote=[remote("srv-1", "Wrote tests", 9)])
        view = await build_merged_view(store, queue, OWNER, TODAY)
        store.query.assert_awaited_once_with(OWNER, TODAY)
        assert view.remote_available is True
        assert [e.text for e in view.entries] == ["Wrote tests"]

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back_to_local(self, queue):
        queue.enqueue(OWNER, "Offline entry", NOW)
        store = make_store()
        store.query.side_effect = RemoteStoreError("no network")

        view = await build_merged_view(store, queue, OWNER, TODAY)

        assert view.remote_available is False
        assert "no network" in view.remote_error
        assert [e.text for e in view.entries] == ["Offline entry"]

    @pytest.mark.asyncio
    async def test_recomputes_after_queue_change(self, queue):
        store = make_store()
        first = await build_merged_view(store, queue, OWNER, TODAY)
        queue.enqueue(OWNER, "New entry", NOW)
        second = await build_merged_view(store, queue, OWNER, TODAY)
        assert first.entries == []
        assert [e.text for e in second.entries] == ["New entry"]
