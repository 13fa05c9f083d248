from pathlib import Path

from app.services.parsing.spreadsheet import parse_csv, parse_xlsx
from app.services.parsing.types import ParsedBatch
from app.services.publishing.errors import BatchParseError

SUPPORTED_EXTENSIONS = {".xlsx", ".csv"}


def parse_batch_file(filename: str, raw_bytes: bytes) -> ParsedBatch:
    ext = Path(filename or "").suffix.lower()
    if ext == ".xlsx":
        return parse_xlsx(raw_bytes)
    if ext == ".csv":
        return parse_csv(raw_bytes)
    raise BatchParseError(f"Unsupported batch file type: {ext or 'none'}")


__all__ = ["ParsedBatch", "parse_batch_file", "SUPPORTED_EXTENSIONS"]
