"""
trustcota/ingestion/reader.py

Spreadsheet readers: XLSX/XLSM (openpyxl) or CSV -> Sheet.

Header-row inference:
- The header is the first row, among the first HEADER_SCAN_ROWS, made of known
  header names for the upload type (at least two of them, or all of its cells).
  Without such a row it is row 1.
- Blank header cells become placeholder keys __EMPTY, __EMPTY_1, ...
- Repeated header names get _1, _2 suffixes.
- Fully blank data rows are dropped.

A sheet whose header keys are all placeholders, or in which no header is a known
column name, is "malformed": callers then use the positional cells of every
non-blank row instead of the keyed values.
"""

from __future__ import annotations

import csv
import io
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import ValidationError

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")
CSV_EXTENSIONS = (".csv",)
SUPPORTED_EXTENSIONS = EXCEL_EXTENSIONS + CSV_EXTENSIONS

PLACEHOLDER = "__EMPTY"
HEADER_SCAN_ROWS = 15
CSV_ENCODINGS = ("utf-8-sig", "cp1252")


class SpreadsheetError(ValidationError):
    """The upload is not a readable spreadsheet."""


@dataclass
class SheetRow:
    row_number: int  # 1-based row in the source sheet
    cells: List[Any]
    values: dict = field(default_factory=dict)


@dataclass
class Sheet:
    headers: List[str]
    rows: List[SheetRow]
    header_row_number: Optional[int] = None
    recognized: bool = True
    # non-blank rows above and including the header, used by the positional fallback
    leading_rows: List[SheetRow] = field(default_factory=list)

    @property
    def malformed(self) -> bool:
        return not self.recognized or not self.headers or all(is_placeholder(h) for h in self.headers)

    def positional_rows(self) -> List[SheetRow]:
        """Every non-blank row of the sheet, header included."""
        return self.leading_rows + self.rows


def is_placeholder(header: str) -> bool:
    return header == PLACEHOLDER or header.startswith(PLACEHOLDER + "_")


def _clean(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _is_blank(cells: Iterable[Any]) -> bool:
    return all(c == "" for c in cells)


def build_headers(cells: List[Any]) -> List[str]:
    """Header names for one row: placeholders for blanks, suffixes for duplicates."""
    headers: List[str] = []
    placeholders = 0
    for value in cells:
        if value == "":
            name = PLACEHOLDER if placeholders == 0 else f"{PLACEHOLDER}_{placeholders}"
            placeholders += 1
        else:
            base = value.isoformat() if isinstance(value, datetime) else str(value)
            name = base
            k = 0
            while name in headers:
                k += 1
                name = f"{base}_{k}"
        headers.append(name)
    return headers


def _excel_rows(content: bytes) -> List[List[Any]]:
    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetError(f"Could not read spreadsheet: {exc}")
    try:
        sheet = wb.worksheets[0]
        return [[_clean(v) for v in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()


def _csv_rows(content: bytes) -> List[List[Any]]:
    text = None
    for encoding in CSV_ENCODINGS:
        try:
            text = content.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    if text is None:
        raise SpreadsheetError("Could not decode CSV file")

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=";,")
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ";" if text.count(";") > text.count(",") else ","

    return [[_clean(v) for v in row] for row in csv.reader(io.StringIO(text), delimiter=delimiter)]


def read_rows(filename: str, content: bytes) -> List[List[Any]]:
    """Raw cell rows of the first sheet (CSV: the whole file)."""
    name = (filename or "").lower()
    if name.endswith(EXCEL_EXTENSIONS):
        return _excel_rows(content)
    if name.endswith(CSV_EXTENSIONS):
        return _csv_rows(content)
    raise SpreadsheetError(
        f"Unsupported file type '{filename}'. Use one of: {', '.join(SUPPORTED_EXTENSIONS)}"
    )


def read_spreadsheet(
    filename: str,
    content: bytes,
    is_known_header: Optional[Callable[[Any], bool]] = None,
) -> Sheet:
    """
    Parse an upload into a Sheet.

    is_known_header(cell) tells whether a cell looks like a column name for the
    upload type; it drives header-row inference.
    """
    raw = read_rows(filename, content)
    numbered = [SheetRow(row_number=i, cells=cells) for i, cells in enumerate(raw, start=1)]
    if not numbered:
        return Sheet(headers=[], rows=[])

    header_index = 0
    recognized = is_known_header is None
    if is_known_header is not None:
        for i, row in enumerate(numbered[:HEADER_SCAN_ROWS]):
            filled = [c for c in row.cells if c != ""]
            known = sum(1 for c in filled if is_known_header(c))
            # a lone "un" or "item" cell in a data row is not a header
            if known and known >= min(2, len(filled)):
                header_index = i
                recognized = True
                break

    header = numbered[header_index]
    width = max(len(r.cells) for r in numbered)
    header_cells = header.cells + [""] * (width - len(header.cells))
    headers = build_headers(header_cells)

    leading = [r for r in numbered[: header_index + 1] if not _is_blank(r.cells)]
    rows: List[SheetRow] = []
    for row in numbered[header_index + 1:]:
        if _is_blank(row.cells):
            continue
        cells = row.cells + [""] * (width - len(row.cells))
        row.cells = cells
        row.values = dict(zip(headers, cells))
        rows.append(row)

    return Sheet(
        headers=headers,
        rows=rows,
        header_row_number=header.row_number,
        recognized=recognized,
        leading_rows=leading,
    )
