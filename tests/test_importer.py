# tests/test_importer.py

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from taskgenie.errors import ValidationError
from taskgenie.tasks.importer import (
    EXPORT_HEADERS,
    build_import,
    export_filename,
    export_rows,
    parse_due_date,
    parse_serial,
    parse_tags,
    resolve_field,
)
from taskgenie.tasks.task_models import Priority, TaskStatus

from .fakes import make_task

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_untitled_rows_are_skipped() -> None:
    rows = [
        {"Title": "one"},
        {"Title": "two"},
        {"Title": "   "},
        {"Task Title": "four"},
        {"name": "five"},
    ]

    result = build_import(rows, [], now=NOW)

    assert result.count == 4
    assert result.skipped == 1
    assert [t.title for t in result.tasks] == ["one", "two", "four", "five"]


def test_generated_serials_continue_after_existing_max() -> None:
    existing = [make_task(3), make_task(7, task_id="seven")]

    result = build_import([{"Title": "a"}, {"Title": "b"}], existing, now=NOW)

    assert [t.serial_number for t in result.tasks] == [8, 9]


def test_explicit_serial_is_kept_and_does_not_advance_counter() -> None:
    rows = [{"Title": "a", "S.No": "12"}, {"Title": "b"}, {"Title": "c", "Serial": "x"}]

    result = build_import(rows, [], now=NOW)

    assert [t.serial_number for t in result.tasks] == [12, 1, 2]


def test_field_defaults_and_synonyms() -> None:
    result = build_import(
        [
            {
                "title": "Plan trip",
                "urgency": "high",
                "State": "In Progress",
                "Labels": "Work, Urgent,  Review",
                "Desc": "Flights and hotel",
                "Notes": "Booked flights",
            },
            {"Title": "Bare"},
        ],
        [],
        now=NOW,
    )
    first, bare = result.tasks

    assert first.priority is Priority.HIGH
    assert first.status is TaskStatus.IN_PROGRESS
    assert first.tags == ["Work", "Urgent", "Review"]
    assert first.description == "Flights and hotel"
    assert first.progress_notes == "Booked flights"

    assert bare.priority is Priority.MEDIUM
    assert bare.status is TaskStatus.PENDING
    assert bare.due_date == NOW
    assert bare.created_at == NOW
    assert bare.subtasks == [] and bare.images == [] and bare.tags == []
    assert bare.id != first.id


def test_resolve_field_prefers_exact_key() -> None:
    assert resolve_field({"title": "lower", "Title": "exact"}, ("Title",)) == "exact"
    assert resolve_field({"TITLE": "upper"}, ("Title",)) == "upper"
    assert resolve_field({"Other": 1}, ("Title",)) is None


def test_spreadsheet_day_serial_becomes_date() -> None:
    assert parse_due_date(45000) == datetime(2023, 3, 15, tzinfo=timezone.utc)
    assert parse_due_date("45000") == datetime(2023, 3, 15, tzinfo=timezone.utc)
    assert parse_due_date(45000.5) == datetime(2023, 3, 15, 12, tzinfo=timezone.utc)


def test_four_digit_cell_is_a_year_not_a_day_serial() -> None:
    assert parse_due_date("2024") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_due_date(" 1999 ") == datetime(1999, 1, 1, tzinfo=timezone.utc)
    assert parse_due_date("45000") == datetime(2023, 3, 15, tzinfo=timezone.utc)
    assert parse_due_date("450") == datetime(1901, 3, 25, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw",
    ["2024-07-04", "2024-07-04T00:00:00Z", "07/04/2024", "4 Jul 2024", date(2024, 7, 4)],
)
def test_due_date_text_formats(raw) -> None:
    assert parse_due_date(raw) == datetime(2024, 7, 4, tzinfo=timezone.utc)


def test_unparseable_due_date_falls_back_to_now() -> None:
    assert parse_due_date("someday") is None
    result = build_import([{"Title": "x", "Due Date": "someday"}], [], now=NOW)
    assert result.tasks[0].due_date == NOW


def test_parse_serial_and_tags() -> None:
    assert parse_serial("12a") == 12
    assert parse_serial(3.0) == 3
    assert parse_serial(0) is None
    assert parse_serial("-4") is None
    assert parse_serial("") is None
    assert parse_tags(" a , ,b ") == ["a", "b"]
    assert parse_tags(None) == []


def test_export_rows_flatten_with_human_headers() -> None:
    tasks = [
        make_task(1, "Alpha", tags=["Work", "Home"], progress_notes="half"),
        make_task(2, "Beta", task_id="b"),
    ]

    rows = export_rows(tasks)

    assert tuple(rows[0]) == EXPORT_HEADERS
    assert rows[0]["Due Date"] == "2024-05-01"
    assert rows[0]["Tags"] == "Work, Home"
    assert rows[1]["Progress Notes"] == ""


def test_export_selection_and_empty() -> None:
    tasks = [make_task(1), make_task(2, task_id="b")]

    assert [r["S.No"] for r in export_rows(tasks, ["b"])] == [2]
    with pytest.raises(ValidationError):
        export_rows([])
    assert export_filename(True) == "SelectedTasks.csv"
    assert export_filename(False, "xlsx") == "MyTasks.xlsx"
