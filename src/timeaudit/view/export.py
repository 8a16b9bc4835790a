"""Excel export: one sheet per day with the time and text of every entry."""
from datetime import date, tzinfo
from pathlib import Path
from typing import Sequence, Union

from openpyxl import Workbook

from timeaudit.models.activity import MergedEntry
from timeaudit.view.days import group_by_day

HEADERS = ["Time", "Activity", "Status"]


def sheet_title(day: date, today: date) -> str:
    if day == today:
        return "Today"
    return f"{day:%b} {day.day} {day.year}"


def build_workbook(entries: Sequence[MergedEntry], tz: tzinfo, today: date) -> Workbook:
    wb = Workbook()
    wb.remove(wb.active)

    for day, day_entries in group_by_day(entries, tz):
        ws = wb.create_sheet(title=sheet_title(day, today))
        ws.append(HEADERS)
        for entry in day_entries:
            ws.append([
                entry.logged_at.astimezone(tz).strftime("%H:%M"),
                entry.text,
                entry.status.value,
            ])
        ws.column_dimensions["B"].width = 60

    if not wb.sheetnames:
        wb.create_sheet(title="Activities").append(HEADERS)
    return wb


def export_workbook(
    entries: Sequence[MergedEntry],
    filepath: Union[str, Path],
    tz: tzinfo,
    today: date,
) -> int:
    """Write entries to an .xlsx file. Returns the number of entries written."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    build_workbook(entries, tz, today).save(filepath)
    return len(entries)
