"""
Command-line entrypoint.

Usage:
    python -m timeaudit log "Wrote tests" [--at 2025-01-15T09:30]
    python -m timeaudit sync            # one delivery pass over the local queue
    python -m timeaudit list [--day 2025-01-15]
    python -m timeaudit export out.xlsx [--days 7]
    python -m timeaudit cleanup
    python -m timeaudit serve           # API + retry scheduler under uvicorn
"""
import argparse
import asyncio
import logging
import sys
from datetime import date, datetime

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _close(synchronizer) -> None:
    for client in (synchronizer.store, synchronizer.users):
        aclose = getattr(client, "aclose", None)
        if aclose is not None:
            await aclose()


async def _log(text: str, at: str = None) -> int:
    from timeaudit.services import build_synchronizer, get_timezone
    from timeaudit.storage.pending_queue import InvalidActivityError
    from timeaudit.storage.slots import StorageWriteError
    from timeaudit.sync.synchronizer import NotAuthenticatedError

    synchronizer = build_synchronizer()
    logged_at = None
    if at:
        logged_at = datetime.fromisoformat(at)
        if logged_at.tzinfo is None:
            logged_at = logged_at.replace(tzinfo=get_timezone())
    try:
        result = await synchronizer.submit(text, logged_at=logged_at)
    except (InvalidActivityError, NotAuthenticatedError) as exc:
        logger.error("%s", exc)
        return 2
    except StorageWriteError as exc:
        logger.error("Could not save locally; the entry was NOT stored: %s", exc)
        return 1
    finally:
        await _close(synchronizer)
    print(f"{result.message} ({result.record.local_id})")
    return 0


async def _sync() -> int:
    from timeaudit.services import build_synchronizer

    synchronizer = build_synchronizer()
    try:
        report = await synchronizer.sync_pending()
    finally:
        await _close(synchronizer)
    print(
        f"{report.status}: {len(report.confirmed)} confirmed, "
        f"{len(report.failed)} failed, {len(report.exhausted)} gave up"
    )
    return 0 if report.status in ("success", "skipped") else 1


async def _list(day: str = None) -> int:
    from timeaudit.services import build_synchronizer, get_timezone
    from timeaudit.view.days import day_range
    from timeaudit.view.merged import build_merged_view

    synchronizer = build_synchronizer()
    tz = get_timezone()
    owner = await synchronizer.users.current_owner()
    if owner is None:
        logger.error("Not authenticated")
        await _close(synchronizer)
        return 2
    target = date.fromisoformat(day) if day else datetime.now(tz).date()
    try:
        view = await build_merged_view(
            synchronizer.store, synchronizer.queue, owner, day_range(target, tz)
        )
    finally:
        await _close(synchronizer)

    if not view.remote_available:
        print("(offline: showing local entries only)")
    if not view.entries:
        print("No activities logged.")
    for entry in view.entries:
        marker = "" if entry.status.value == "confirmed" else f"  [{entry.status.value}]"
        print(f"{entry.logged_at.astimezone(tz):%H:%M}  {entry.text}{marker}")
    return 0


async def _export(path: str, days: int) -> int:
    from timeaudit.services import build_synchronizer, get_timezone
    from timeaudit.view.days import days_range
    from timeaudit.view.export import export_workbook
    from timeaudit.view.merged import build_merged_view

    synchronizer = build_synchronizer()
    tz = get_timezone()
    owner = await synchronizer.users.current_owner()
    if owner is None:
        logger.error("Not authenticated")
        await _close(synchronizer)
        return 2
    today = datetime.now(tz).date()
    try:
        view = await build_merged_view(
            synchronizer.store, synchronizer.queue, owner, days_range(today, days, tz)
        )
    finally:
        await _close(synchronizer)
    count = export_workbook(view.entries, path, tz, today)
    print(f"Exported {count} activities to {path}")
    return 0


def _cleanup() -> int:
    from timeaudit.services import build_queue

    result = build_queue().cleanup()
    print(
        f"Removed {len(result.removed_confirmed)} confirmed, "
        f"{len(result.abandoned)} abandoned"
    )
    for record in result.abandoned:
        print(f"  not synced: {record.logged_at:%Y-%m-%d %H:%M}  {record.text}")
    return 0


def _serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("timeaudit.api.main:app", host=host, port=port)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="timeaudit", description="Offline-first activity log")
    sub = parser.add_subparsers(dest="command", required=True)

    p_log = sub.add_parser("log", help="Log an activity")
    p_log.add_argument("text")
    p_log.add_argument("--at", help="ISO timestamp to backdate the entry")

    sub.add_parser("sync", help="Deliver queued activities")

    p_list = sub.add_parser("list", help="Show one day's activities")
    p_list.add_argument("--day", help="YYYY-MM-DD (default: today)")

    p_export = sub.add_parser("export", help="Export recent days to .xlsx")
    p_export.add_argument("path")
    p_export.add_argument("--days", type=int, default=7)

    sub.add_parser("cleanup", help="Drop old confirmed and abandoned entries")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    if args.command == "log":
        return asyncio.run(_log(args.text, args.at))
    if args.command == "sync":
        return asyncio.run(_sync())
    if args.command == "list":
        return asyncio.run(_list(args.day))
    if args.command == "export":
        return asyncio.run(_export(args.path, args.days))
    if args.command == "cleanup":
        return _cleanup()
    return _serve(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
