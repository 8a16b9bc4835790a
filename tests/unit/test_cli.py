"""Tests for the command-line entrypoint (collaborators patched at their source module)."""
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import NOW
from timeaudit.__main__ import main
from timeaudit.models.activity import PendingActivity
from timeaudit.remote.base import RemoteStoreError
from timeaudit.storage.slots import StorageWriteError
from timeaudit.sync.synchronizer import SubmitResult, SyncReport


def _record(text="Wrote tests"):
    return PendingActivity(
        local_id="local_1", owner_id="user-1", text=text, logged_at=NOW, created_at=NOW
    )


def _synchronizer():
    synchronizer = MagicMock()
    synchronizer.store = MagicMock(spec=[])
    synchronizer.users = MagicMock(spec=["current_owner"])
    synchronizer.users.current_owner = AsyncMock(return_value="user-1")
    return synchronizer


class TestLogCommand:
    def test_saved_locally_message(self, capsys):
        synchronizer = _synchronizer()
        synchronizer.submit = AsyncMock(
            return_value=SubmitResult(record=_record(), delivered=False, error="offline")
        )
        with patch("timeaudit.services.build_synchronizer", return_value=synchronizer):
            code = main(["log", "Wrote tests"])
        assert code == 0
        assert "Saved locally, will retry" in capsys.readouterr().out

    def test_backdated_entry(self):
        synchronizer = _synchronizer()
        synchronizer.submit = AsyncMock(
            return_value=SubmitResult(record=_record(), delivered=True)
        )
        with patch("timeaudit.services.build_synchronizer", return_value=synchronizer):
            main(["log", "Standup", "--at", "2025-01-15T09:30:00+00:00"])
        logged_at = synchronizer.submit.await_args.kwargs["logged_at"]
        assert logged_at.hour == 9

    def test_local_write_failure_exit_code(self):
        synchronizer = _synchronizer()
        synchronizer.submit = AsyncMock(side_effect=StorageWriteError("disk full"))
        with patch("timeaudit.services.build_synchronizer", return_value=synchronizer):
            assert main(["log", "Wrote tests"]) == 1


class TestSyncCommand:
    def test_reports_counts(self, capsys):
        synchronizer = _synchronizer()
        synchronizer.sync_pending = AsyncMock(
            return_value=SyncReport(status="success", confirmed=["local_1"])
        )
        with patch("timeaudit.services.build_synchronizer", return_value=synchronizer):
            code = main(["sync"])
        assert code == 0
        assert "1 confirmed" in capsys.readouterr().out

    def test_failures_exit_nonzero(self):
        synchronizer = _synchronizer()
        synchronizer.sync_pending = AsyncMock(
            return_value=SyncReport(status="error", failed=["local_1"])
        )
        with patch("timeaudit.services.build_synchronizer", return_value=synchronizer):
            assert main(["sync"]) == 1


class TestListCommand:
    def test_offline_listing(self, capsys, queue):
        queue.enqueue("user-1", "Offline entry", NOW)
        synchronizer = _synchronizer()
        synchronizer.queue = queue
        synchronizer.store.query = AsyncMock(side_effect=RemoteStoreError("offline"))
        with patch("timeaudit.services.build_synchronizer", return_value=synchronizer), \
             patch("timeaudit.services.get_timezone", return_value=NOW.tzinfo):
            code = main(["list", "--day", "2025-01-15"])
        out = capsys.readouterr().out
        assert code == 0
        assert "offline" in out
        assert "Offline entry  [pending]" in out
