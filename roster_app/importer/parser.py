"""Record parser for uploaded roster files.

Decodes a CSV or XLSX upload into an ordered sequence of raw field maps keyed
by canonical column name. The header is row 1, so data rows are numbered from
2; blank rows are skipped but keep their number so reports line up with what
the uploader sees in their spreadsheet.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Iterator, Mapping, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .contracts import get_roster_alias_map, get_roster_required_headers, normalize_header
from .errors import MalformedInputError, SchemaMismatchError

logger = logging.getLogger(__name__)

FORMAT_CSV = "csv"
FORMAT_XLSX = "xlsx"

CSV_CONTENT_TYPES = frozenset({"text/csv", "application/csv", "text/plain", "application/vnd.ms-excel"})
XLSX_CONTENT_TYPES = frozenset({"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"})
_EXTENSION_FORMATS = {".csv": FORMAT_CSV, ".txt": FORMAT_CSV, ".xlsx": FORMAT_XLSX, ".xlsm": FORMAT_XLSX}
_ZIP_MAGIC = b"PK\x03\x04"

HEADER_ROW_NUMBER = 1


@dataclass(frozen=True)
class HeaderValidationResult:
    raw_headers: tuple[str, ...]
    canonical_headers: tuple[str | None, ...]
    unexpected: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedRow:
    """One non-blank data row with values keyed by canonical column."""

    row_number: int
    raw: Mapping[str, str | None]


@dataclass(frozen=True)
class ParsedFile:
    format: str
    header: HeaderValidationResult
    rows: tuple[ParsedRow, ...]
    blank_rows: int = 0
    filename: str | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class _Accumulator:
    rows: list[ParsedRow] = field(default_factory=list)
    blank_rows: int = 0


def _validate_headers(raw_headers: Sequence[object], *, require_email: bool) -> HeaderValidationResult:
    alias_map = get_roster_alias_map()
    sanitized = tuple("" if header is None else str(header).strip().lstrip("\ufeff") for header in raw_headers)
    seen: set[str] = set()
    duplicates: list[str] = []
    unexpected: list[str] = []
    canonical: list[str | None] = []

    for header in sanitized:
        if not header:
            canonical.append(None)
            continue
        name = alias_map.get(normalize_header(header))
        if name is None:
            unexpected.append(header)
            canonical.append(None)
            continue
        if name in seen:
            duplicates.append(name)
        seen.add(name)
        canonical.append(name)

    missing = [name for name in get_roster_required_headers(require_email=require_email) if name not in seen]
    if missing or duplicates:
        raise SchemaMismatchError(missing=missing, duplicates=duplicates)

    if unexpected:
        logger.debug("Ignoring unrecognized roster columns: %s", ", ".join(unexpected))
    return HeaderValidationResult(
        raw_headers=sanitized,
        canonical_headers=tuple(canonical),
        unexpected=tuple(unexpected),
    )


def _stringify(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def _row_is_blank(values: Iterable[str | None]) -> bool:
    return all(value is None or value.strip() == "" for value in values)


def _collect_rows(header: HeaderValidationResult, records: Iterable[Sequence[object]]) -> _Accumulator:
    acc = _Accumulator()
    width = len(header.canonical_headers)
    for offset, record in enumerate(records, start=1):
        values = [_stringify(value) for value in list(record)[:width]]
        if _row_is_blank(values):
            acc.blank_rows += 1
            continue
        values.extend([None] * (width - len(values)))
        raw = {name: value for name, value in zip(header.canonical_headers, values) if name is not None}
        acc.rows.append(ParsedRow(row_number=HEADER_ROW_NUMBER + offset, raw=raw))
    return acc


class RecordParser:
    """Turn uploaded bytes into ``ParsedRow`` objects under the roster column contract."""

    def __init__(self, *, require_email: bool = True, max_upload_bytes: int | None = None) -> None:
        self.require_email = require_email
        self.max_upload_bytes = max_upload_bytes

    def detect_format(self, content: bytes, content_type: str | None, filename: str | None = None) -> str:
        declared = (content_type or "").split(";", 1)[0].strip().lower()
        if declared in XLSX_CONTENT_TYPES:
            return FORMAT_XLSX
        if declared in CSV_CONTENT_TYPES:
            # Legacy Excel MIME type is sent by browsers for both .csv and .xlsx uploads
            if declared == "application/vnd.ms-excel" and content.startswith(_ZIP_MAGIC):
                return FORMAT_XLSX
            return FORMAT_CSV
        if filename:
            lowered = filename.lower()
            for extension, fmt in _EXTENSION_FORMATS.items():
                if lowered.endswith(extension):
                    return fmt
        raise MalformedInputError(f"Unsupported content type '{content_type or 'unknown'}'.")

    def parse(self, content: bytes, content_type: str | None, *, filename: str | None = None) -> ParsedFile:
        if content is None or len(content) == 0:
            raise MalformedInputError("Uploaded file is empty.")
        if self.max_upload_bytes is not None and len(content) > self.max_upload_bytes:
            raise MalformedInputError(
                f"Uploaded file is {len(content)} bytes; the limit is {self.max_upload_bytes} bytes."
            )

        fmt = self.detect_format(content, content_type, filename)
        if fmt == FORMAT_XLSX:
            header, records = self._read_xlsx(content)
        else:
            header, records = self._read_csv(content)

        acc = _collect_rows(header, records)
        logger.debug(
            "Parsed roster upload",
            extra={
                "roster_format": fmt,
                "roster_rows": len(acc.rows),
                "roster_blank_rows": acc.blank_rows,
                "roster_filename": filename,
            },
        )
        return ParsedFile(
            format=fmt,
            header=header,
            rows=tuple(acc.rows),
            blank_rows=acc.blank_rows,
            filename=filename,
        )

    def _read_csv(self, content: bytes) -> tuple[HeaderValidationResult, list[list[str]]]:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise MalformedInputError(f"CSV upload is not valid UTF-8: {exc}") from exc

        try:
            reader = csv.reader(io.StringIO(text, newline=""))
            records = list(reader)
        except csv.Error as exc:
            raise MalformedInputError(f"CSV upload could not be parsed: {exc}") from exc

        return self._split_header(records)

    def _read_xlsx(self, content: bytes) -> tuple[HeaderValidationResult, list[tuple[object, ...]]]:
        try:
            wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
            raise MalformedInputError(f"Spreadsheet upload could not be opened: {exc}") from exc

        try:
            if not wb.worksheets:
                raise MalformedInputError("Spreadsheet upload has no worksheets.")
            ws = wb.worksheets[0]
            records = [tuple(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

        return self._split_header(records)

    def _split_header(self, records: list) -> tuple[HeaderValidationResult, list]:
        rows: Iterator = iter(records)
        header_row = next(rows, None)
        if header_row is None or _row_is_blank(_stringify(value) for value in header_row):
            raise MalformedInputError("Uploaded file has no header row.")
        header = _validate_headers(header_row, require_email=self.require_email)
        return header, list(rows)


__all__ = [
    "CSV_CONTENT_TYPES",
    "FORMAT_CSV",
    "FORMAT_XLSX",
    "HeaderValidationResult",
    "ParsedFile",
    "ParsedRow",
    "RecordParser",
    "XLSX_CONTENT_TYPES",
]
