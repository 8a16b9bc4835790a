"""Calendar-day helpers: day ranges in the user's timezone and per-day grouping."""
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, List, Optional, Sequence, Tuple

from timeaudit.models.activity import DateRange, MergedEntry


def day_range(day: date, tz: tzinfo) -> DateRange:
    """[local midnight, next local midnight) for `day` in `tz`."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return DateRange(start=start, end=end)


def days_range(last_day: date, days: int, tz: tzinfo) -> DateRange:
    """The `days` calendar days ending with `last_day`, inclusive."""
    first = last_day - timedelta(days=max(days, 1) - 1)
    return DateRange(start=day_range(first, tz).start, end=day_range(last_day, tz).end)


def group_by_day(
    entries: Sequence[MergedEntry], tz: tzinfo
) -> List[Tuple[date, List[MergedEntry]]]:
    """Group entries by local calendar day; newest day first, newest entry first."""
    groups: Dict[date, List[MergedEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.logged_at.astimezone(tz).date(), []).append(entry)

    return [
        (day, sorted(groups[day], key=lambda e: e.logged_at, reverse=True))
        for day in sorted(groups, reverse=True)
    ]


def latest_text(entries: Sequence[MergedEntry]) -> Optional[str]:
    """Text of the most recent entry, for a "same as previous" resubmission."""
    if not entries:
        return None
    return max(entries, key=lambda e: e.logged_at).text
