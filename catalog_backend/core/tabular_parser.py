"""Tabular Parser: turns an uploaded CSV or Excel file into source rows.

Rows are keyed by the literal (whitespace-trimmed) source headers; mapping to
schema keys happens later in the column reconciler. The whole file is checked
up front: a malformed file raises TableParseError and yields no rows at all.
"""

import csv
import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from catalog_backend.core.errors import TableParseError

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv", ".txt")
EXCEL_EXTENSIONS = (".xlsx", ".xlsm")

COMMENT_PREFIX = "#"


@dataclass(frozen=True)
class SourceRow:
    """One data row keyed by literal source header."""
    row_number: int   # 1-based position among data rows
    line_number: int  # 1-based position in the source file
    values: Mapping[str, str]

    def get(self, header: Optional[str], default: str = "") -> str:
        if header is None:
            return default
        return self.values.get(header, default)


class ParsedTable:
    """A validated table: finite, restartable, materialized lazily per row."""

    def __init__(
        self,
        headers: list[str],
        rows: list[tuple[int, list[str]]],
        source_name: str = "",
    ):
        self.headers: tuple[str, ...] = tuple(h for h in headers if h)
        self.source_name = source_name
        self._columns = [(i, h) for i, h in enumerate(headers) if h]
        self._rows = rows

    def __iter__(self) -> Iterator[SourceRow]:
        for row_number, (line_number, cells) in enumerate(self._rows, start=1):
            values = {h: cells[i] if i < len(cells) else "" for i, h in self._columns}
            yield SourceRow(
                row_number=row_number,
                line_number=line_number,
                values=MappingProxyType(values),
            )

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def is_empty(self) -> bool:
        return not self._rows


def _is_blank(cells: list[str]) -> bool:
    return all(c.strip() == "" for c in cells)


def _is_comment(cells: list[str]) -> bool:
    return bool(cells) and cells[0].lstrip().startswith(COMMENT_PREFIX)


def _build_table(
    lines: Iterable[tuple[int, list[str]]],
    source_name: str,
    pad_short_rows: bool = False,
) -> ParsedTable:
    """Locate the header, validate every row shape and collect data rows.

    lines: (line_number, cells) pairs in file order
    pad_short_rows: spreadsheets have no row width, so short rows are padded
    """
    headers: Optional[list[str]] = None
    rows: list[tuple[int, list[str]]] = []

    for line_number, cells in lines:
        if _is_blank(cells):
            continue

        # Notes are only allowed above the header; after it every line is data.
        if headers is None and _is_comment(cells):
            continue

        if headers is None:
            headers = [c.strip() for c in cells]
            named = [h for h in headers if h]
            if not named:
                raise TableParseError(f"{source_name}: header row has no column names")
            duplicates = sorted({h for h in named if named.count(h) > 1})
            if duplicates:
                raise TableParseError(
                    f"{source_name}: duplicate column headers: {', '.join(duplicates)}"
                )
            continue

        width = len(headers)
        if len(cells) > width:
            # Trailing empty cells are common in spreadsheet exports.
            if not _is_blank(cells[width:]):
                raise TableParseError(
                    f"{source_name}: line {line_number} has {len(cells)} columns, "
                    f"header has {width}"
                )
            cells = cells[:width]
        elif len(cells) < width and pad_short_rows:
            cells = cells + [""] * (width - len(cells))
        elif len(cells) < width:
            raise TableParseError(
                f"{source_name}: line {line_number} has {len(cells)} columns, "
                f"header has {width}"
            )

        rows.append((line_number, cells))

    if headers is None:
        raise TableParseError(f"{source_name}: file has no header row")

    logger.info(f"Parsed {len(rows)} data rows from {source_name}")
    return ParsedTable(headers, rows, source_name)


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        if raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TableParseError(f"File is not valid UTF-8 text: {e}")
    if raw.startswith("\ufeff"):
        return raw[1:]
    return raw


def parse_csv(raw: str | bytes, source_name: str = "upload.csv") -> ParsedTable:
    """Parse delimited text with a header line."""
    text = _decode(raw)
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)

    lines: list[tuple[int, list[str]]] = []
    try:
        for cells in reader:
            lines.append((reader.line_num, cells))
    except csv.Error as e:
        raise TableParseError(f"{source_name}: malformed CSV near line {reader.line_num}: {e}")

    return _build_table(lines, source_name)


def _cell_to_text(value: Any) -> str:
    """Render an openpyxl cell value as the text an operator typed."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def parse_excel(content: bytes, source_name: str = "upload.xlsx") -> ParsedTable:
    """Parse the first worksheet of an .xlsx workbook."""
    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise TableParseError(f"{source_name}: not a readable Excel workbook: {e}")

    try:
        if not wb.worksheets:
            raise TableParseError(f"{source_name}: workbook has no worksheets")
        ws = wb.worksheets[0]
        lines = [
            (line_number, [_cell_to_text(v) for v in row])
            for line_number, row in enumerate(ws.iter_rows(values_only=True), start=1)
        ]
    finally:
        wb.close()

    return _build_table(lines, source_name, pad_short_rows=True)


def parse_upload(filename: str, content: bytes) -> ParsedTable:
    """Dispatch on file extension."""
    lower = (filename or "").lower()
    if lower.endswith(EXCEL_EXTENSIONS):
        return parse_excel(content, filename)
    if lower.endswith(CSV_EXTENSIONS):
        return parse_csv(content, filename)
    raise TableParseError(
        f"Unsupported file type: '{filename}'. "
        f"Expected one of {', '.join(CSV_EXTENSIONS + EXCEL_EXTENSIONS)}"
    )
