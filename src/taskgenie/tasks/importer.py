# src/taskgenie/tasks/importer.py

"""
Spreadsheet import/export.

Import turns loosely-typed rows (arbitrary header strings, mixed value types) into
new Tasks. Nothing here touches persistence: the coordinator appends the whole
batch at once.

Field mapping (header synonyms are tried in order, exact key first, then
case-insensitive):
    title           Title | Task Title | name           required, row skipped if blank
    priority        Priority | Urgency                  unknown -> Medium
    status          Status | State                      unknown -> Pending
    serial_number   S.No | Serial | No | ID             positive int, else next free
    tags            Tags | Labels | Category            "a, b" -> ["a", "b"]
    due_date        Due Date | DueDate | Due | Date     day serial or date text, else now
    description     Description | Desc | Details
    progress_notes  Progress Notes | Progress | Notes
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from ..errors import ValidationError
from .normalize import ensure_utc, parse_timestamp
from .task_models import Priority, Task, TaskStatus, new_id, utc_now
from .views import next_serial

logger = logging.getLogger(__name__)

TITLE_KEYS = ("Title", "Task Title", "name")
PRIORITY_KEYS = ("Priority", "Urgency")
STATUS_KEYS = ("Status", "State")
SERIAL_KEYS = ("S.No", "Serial", "No", "ID")
TAG_KEYS = ("Tags", "Labels", "Category")
DUE_DATE_KEYS = ("Due Date", "DueDate", "Due", "Date")
DESCRIPTION_KEYS = ("Description", "Desc", "Details")
PROGRESS_KEYS = ("Progress Notes", "Progress", "Notes")

# Spreadsheet day zero (serial 0). 1899-12-30 absorbs the 1900 leap-year quirk.
SPREADSHEET_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

_LEADING_INT = re.compile(r"^\s*\+?(\d+)")
_NUMERIC = re.compile(r"^\s*\d+(\.\d+)?\s*$")
# A bare four-digit cell is a year, not a day serial.
_YEAR = re.compile(r"^\s*[1-9]\d{3}\s*$")

EXPORT_HEADERS = (
    "S.No",
    "Title",
    "Description",
    "Priority",
    "Status",
    "Due Date",
    "Tags",
    "Progress Notes",
)


@dataclass(slots=True)
class ImportResult:
    tasks: list[Task] = field(default_factory=list)
    skipped: int = 0

    @property
    def count(self) -> int:
        return len(self.tasks)


# ---- field resolution / coercion ----


def resolve_field(row: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in row:
            return row[key]
        wanted = key.lower()
        for raw_key in row:
            if isinstance(raw_key, str) and raw_key.lower() == wanted:
                return row[raw_key]
    return None


def parse_serial(value: Any) -> int | None:
    """Positive integer or None (leading digits of a string count, as in '12a')."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            n = int(value)
        except (OverflowError, ValueError):
            return None
        return n if n > 0 else None
    m = _LEADING_INT.match(str(value))
    if not m:
        return None
    n = int(m.group(1))
    return n if n > 0 else None


def spreadsheet_serial_to_datetime(serial: float) -> datetime | None:
    try:
        return SPREADSHEET_EPOCH + timedelta(days=float(serial))
    except (OverflowError, ValueError):
        return None


def parse_due_date(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return spreadsheet_serial_to_datetime(value)
    text = str(value).strip()
    if not text:
        return None
    if _YEAR.match(text):
        return datetime(int(text), 1, 1, tzinfo=timezone.utc)
    if _NUMERIC.match(text):
        return spreadsheet_serial_to_datetime(float(text))
    parsed = parse_timestamp(text)
    if parsed is not None:
        return parsed
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_tags(value: Any) -> list[str]:
    if not isinstance(value, str):
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


# ---- import ----


def build_import(
    rows: Iterable[Mapping[str, Any]],
    existing: Sequence[Task],
    *,
    now: datetime | None = None,
) -> ImportResult:
    """
    Build new Tasks from parsed spreadsheet rows.

    Explicit serial numbers are taken as-is even when they collide with existing
    tasks; generated ones continue after the current maximum and never collide
    with each other.
    """
    now = now or utc_now()
    upcoming = next_serial(existing)
    result = ImportResult()

    for row in rows:
        if not isinstance(row, Mapping):
            result.skipped += 1
            continue

        title_raw = resolve_field(row, TITLE_KEYS)
        title = _text(title_raw).strip()
        if not title:
            result.skipped += 1
            continue

        serial = parse_serial(resolve_field(row, SERIAL_KEYS))
        if serial is None:
            serial = upcoming
            upcoming += 1

        due_date = parse_due_date(resolve_field(row, DUE_DATE_KEYS)) or now

        result.tasks.append(
            Task(
                id=new_id(),
                serial_number=serial,
                title=title,
                description=_text(resolve_field(row, DESCRIPTION_KEYS)),
                priority=Priority.parse(resolve_field(row, PRIORITY_KEYS)),
                status=TaskStatus.parse(resolve_field(row, STATUS_KEYS)),
                due_date=due_date,
                created_at=now,
                subtasks=[],
                tags=parse_tags(resolve_field(row, TAG_KEYS)),
                images=[],
                progress_notes=_text(resolve_field(row, PROGRESS_KEYS)),
            )
        )

    logger.info("Import built %d tasks (skipped %d rows)", result.count, result.skipped)
    return result


# ---- export ----


def export_rows(tasks: Sequence[Task], selected_ids: Iterable[str] | None = None) -> list[dict[str, Any]]:
    """Flatten tasks into rows with human headers; only the selection when one is given."""
    selected = set(selected_ids or ())
    chosen = [t for t in tasks if t.id in selected] if selected else list(tasks)
    if not chosen:
        raise ValidationError("No tasks available to export.")
    return [
        {
            "S.No": t.serial_number,
            "Title": t.title,
            "Description": t.description,
            "Priority": t.priority.value,
            "Status": t.status.value,
            "Due Date": ensure_utc(t.due_date).date().isoformat(),
            "Tags": ", ".join(t.tags),
            "Progress Notes": t.progress_notes or "",
        }
        for t in chosen
    ]


def export_filename(has_selection: bool, fmt: str = "csv") -> str:
    base = "SelectedTasks" if has_selection else "MyTasks"
    return f"{base}.{fmt}"
