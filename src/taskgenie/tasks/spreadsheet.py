# src/taskgenie/tasks/spreadsheet.py

"""
Spreadsheet codec: bytes <-> ordered list of row dicts.

- CSV via the csv module (UTF-8, BOM tolerated; latin-1 fallback)
- XLSX via openpyxl (first worksheet, first row is the header)

Empty cells decode to "" so every row carries every header, like a sheet-to-JSON
conversion with a default value.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Sequence
from typing import Any

from openpyxl import Workbook, load_workbook

from ..core.ports import Row

logger = logging.getLogger(__name__)

_XLSX_MAGIC = b"PK\x03\x04"


class SpreadsheetError(ValueError):
    """The file could not be decoded as CSV or XLSX."""


def _is_xlsx(data: bytes, filename: str) -> bool:
    name = filename.lower()
    if name.endswith((".xlsx", ".xlsm")):
        return True
    if name.endswith(".csv"):
        return False
    return data.startswith(_XLSX_MAGIC)


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


class SpreadsheetCodec:
    def decode(self, data: bytes, *, filename: str = "") -> list[Row]:
        if not data:
            return []
        if _is_xlsx(data, filename):
            return self._decode_xlsx(data)
        return self._decode_csv(data)

    def encode(self, rows: Sequence[Row], *, fmt: str = "csv") -> bytes:
        headers: list[str] = []
        for row in rows:
            for key in row:
                if key not in headers:
                    headers.append(key)
        if fmt == "csv":
            return self._encode_csv(headers, rows)
        if fmt == "xlsx":
            return self._encode_xlsx(headers, rows)
        raise ValueError(f"Unsupported spreadsheet format: {fmt}")

    # ---- csv ----

    @staticmethod
    def _decode_csv(data: bytes) -> list[Row]:
        text = _decode_text(data)
        try:
            reader = csv.DictReader(io.StringIO(text, newline=""))
            rows: list[Row] = []
            for raw in reader:
                row: Row = {}
                for key, value in raw.items():
                    if key is None:
                        continue  # overflow cells beyond the header
                    row[key] = "" if value is None else value
                rows.append(row)
        except csv.Error as e:
            raise SpreadsheetError(f"Invalid CSV: {e}") from e
        logger.debug("Decoded CSV rows=%d", len(rows))
        return rows

    @staticmethod
    def _encode_csv(headers: list[str], rows: Sequence[Row]) -> bytes:
        buf = io.StringIO(newline="")
        writer = csv.DictWriter(buf, fieldnames=headers, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow({h: row.get(h, "") for h in headers})
        return buf.getvalue().encode("utf-8")

    # ---- xlsx ----

    @staticmethod
    def _decode_xlsx(data: bytes) -> list[Row]:
        try:
            wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except Exception as e:
            raise SpreadsheetError(f"Invalid XLSX: {e}") from e
        try:
            ws = wb.worksheets[0] if wb.worksheets else None
            if ws is None:
                return []
            it = ws.iter_rows(values_only=True)
            header_row = next(it, None)
            if header_row is None:
                return []
            headers = ["" if h is None else str(h) for h in header_row]
            rows: list[Row] = []
            for values in it:
                if values is None or all(v is None or v == "" for v in values):
                    continue
                row: Row = {}
                for i, header in enumerate(headers):
                    if not header:
                        continue
                    value: Any = values[i] if i < len(values) else None
                    row[header] = "" if value is None else value
                rows.append(row)
        finally:
            wb.close()
        logger.debug("Decoded XLSX rows=%d", len(rows))
        return rows

    @staticmethod
    def _encode_xlsx(headers: list[str], rows: Sequence[Row]) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = "Tasks"
        ws.append(headers)
        for row in rows:
            ws.append([row.get(h, "") for h in headers])
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()
