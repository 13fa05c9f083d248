import csv
import io
import zipfile
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.services.parsing.types import ParsedBatch
from app.services.publishing.errors import BatchParseError


def parse_xlsx(raw_bytes: bytes) -> ParsedBatch:
    try:
        workbook = load_workbook(io.BytesIO(raw_bytes), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as exc:
        raise BatchParseError("Unable to read the uploaded workbook.") from exc
    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            raise BatchParseError("The uploaded workbook has no worksheets.")
        return _rows_to_batch(sheet.iter_rows(values_only=True), parser="xlsx", sheet_name=sheet.title)
    finally:
        workbook.close()


def parse_csv(raw_bytes: bytes) -> ParsedBatch:
    try:
        text = raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise BatchParseError("CSV uploads must be UTF-8 encoded.") from exc
    return _rows_to_batch(csv.reader(io.StringIO(text)), parser="csv")


def _rows_to_batch(raw_rows: Iterable[Sequence[Any]], parser: str, sheet_name: str | None = None) -> ParsedBatch:
    columns: list[str] | None = None
    rows: list[dict[str, Any]] = []
    skipped = 0
    for raw in raw_rows:
        values = [_normalize_cell(value) for value in raw]
        if all(value is None for value in values):
            skipped += 1
            continue
        if columns is None:
            columns = _header(values)
            continue
        record = {}
        for idx, name in enumerate(columns):
            record[name] = values[idx] if idx < len(values) else None
        rows.append(record)

    summary = {"parser": parser, "row_count": len(rows), "skipped_empty_rows": skipped}
    if sheet_name:
        summary["sheet"] = sheet_name
    return ParsedBatch(columns=columns or [], rows=rows, summary=summary)


def _header(values: list[Any]) -> list[str]:
    names: list[str] = []
    seen: set[str] = set()
    for idx, value in enumerate(values, start=1):
        name = str(value).strip() if value is not None else ""
        if not name:
            name = f"column_{idx}"
        base, suffix = name, 2
        while name in seen:
            name = f"{base}_{suffix}"
            suffix += 1
        seen.add(name)
        names.append(name)
    return names


def _normalize_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value
