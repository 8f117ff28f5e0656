# tests/test_spreadsheet.py

from __future__ import annotations

import io

import pytest
from openpyxl import Workbook, load_workbook

from taskgenie.tasks.spreadsheet import SpreadsheetCodec, SpreadsheetError


def test_csv_decode_fills_empty_cells_and_strips_bom() -> None:
    data = "\ufeffTitle,Priority,Tags\nWrite docs,High,\"a, b\"\nShip,,\n".encode("utf-8")

    rows = SpreadsheetCodec().decode(data, filename="tasks.csv")

    assert rows == [
        {"Title": "Write docs", "Priority": "High", "Tags": "a, b"},
        {"Title": "Ship", "Priority": "", "Tags": ""},
    ]


def test_csv_latin1_fallback() -> None:
    data = "Title\nCaf\xe9\n".encode("latin-1")
    assert SpreadsheetCodec().decode(data) == [{"Title": "Café"}]


def test_xlsx_decode_reads_first_sheet_with_native_types() -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(["Title", "Due Date", "S.No"])
    ws.append(["Plan", 45000, 3])
    ws.append([None, None, None])
    ws.append(["Review", None, None])
    buf = io.BytesIO()
    wb.save(buf)

    rows = SpreadsheetCodec().decode(buf.getvalue(), filename="tasks.xlsx")

    assert rows == [
        {"Title": "Plan", "Due Date": 45000, "S.No": 3},
        {"Title": "Review", "Due Date": "", "S.No": ""},
    ]


def test_xlsx_detected_by_content_without_extension() -> None:
    wb = Workbook()
    wb.active.append(["Title"])
    wb.active.append(["From bytes"])
    buf = io.BytesIO()
    wb.save(buf)

    assert SpreadsheetCodec().decode(buf.getvalue()) == [{"Title": "From bytes"}]


def test_invalid_xlsx_raises() -> None:
    with pytest.raises(SpreadsheetError):
        SpreadsheetCodec().decode(b"not a workbook", filename="broken.xlsx")


def test_encode_csv_and_xlsx() -> None:
    rows = [{"S.No": 1, "Title": "A"}, {"S.No": 2, "Title": "B"}]
    codec = SpreadsheetCodec()

    csv_bytes = codec.encode(rows)
    assert csv_bytes.decode("utf-8").splitlines() == ["S.No,Title", "1,A", "2,B"]

    wb = load_workbook(io.BytesIO(codec.encode(rows, fmt="xlsx")))
    ws = wb["Tasks"]
    assert [list(r) for r in ws.iter_rows(values_only=True)] == [["S.No", "Title"], [1, "A"], [2, "B"]]

    with pytest.raises(ValueError):
        codec.encode(rows, fmt="ods")


def test_empty_input_decodes_to_no_rows() -> None:
    assert SpreadsheetCodec().decode(b"") == []
