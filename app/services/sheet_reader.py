"""Read workbook sheets (.xlsx, .xls, .csv) into header + row grids."""

import csv
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import openpyxl
import xlrd

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".xlsx", ".xls", ".csv"})

# Header detection window and the length above which a lone cell is a title banner.
HEADER_SCAN_ROWS = 12
TITLE_CELL_MIN_LENGTH = 120

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")


class FileReadError(Exception):
    """A workbook could not be opened or parsed."""

    def __init__(self, path: str | Path, message: str):
        self.path = str(path)
        self.message = message
        super().__init__(f"{self.path}: {message}")


@dataclass
class Sheet:
    name: str
    rows: list[list[Any]] = field(default_factory=list)


def sanitize_cell(value: Any) -> Any:
    """Strip control/non-printable characters and surrounding whitespace from text cells."""
    if not isinstance(value, str):
        return value
    cleaned = _CONTROL_CHARS.sub("", value)
    cleaned = "".join(
        ch for ch in cleaned if ch in "\t\n\r" or unicodedata.category(ch) != "Cf"
    )
    return cleaned.strip()


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _read_xlsx(path: Path) -> list[Sheet]:
    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        return [
            Sheet(ws.title, [list(row) for row in ws.iter_rows(values_only=True)])
            for ws in wb.worksheets
        ]
    finally:
        wb.close()


def _xls_value(cell: Any, datemode: int) -> Any:
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
        except (xlrd.xldate.XLDateError, ValueError, OverflowError):
            return cell.value
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    return cell.value


def _read_xls(path: Path) -> list[Sheet]:
    book = xlrd.open_workbook(str(path))
    sheets = []
    for sh in book.sheets():
        rows = [
            [_xls_value(sh.cell(r, c), book.datemode) for c in range(sh.ncols)]
            for r in range(sh.nrows)
        ]
        sheets.append(Sheet(sh.name, rows))
    return sheets


def _read_csv(path: Path) -> list[Sheet]:
    with path.open(newline="", encoding="utf-8-sig") as f:
        rows = [list(row) for row in csv.reader(f)]
    return [Sheet(path.stem, rows)]


def read_workbook(path: str | Path) -> list[Sheet]:
    """All sheets of a workbook. Raises FileReadError when the file cannot be parsed."""
    path = Path(path)
    ext = path.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise FileReadError(path, f"unsupported extension {ext!r}")
    try:
        if ext == ".xlsx":
            return _read_xlsx(path)
        if ext == ".xls":
            return _read_xls(path)
        return _read_csv(path)
    except FileReadError:
        raise
    except Exception as e:
        # openpyxl/xlrd raise a wide range of types for corrupt files
        raise FileReadError(path, str(e) or type(e).__name__) from e


def _is_title_row(cells: list[Any]) -> bool:
    non_empty = [c for c in cells if not is_blank(c)]
    return (
        len(non_empty) == 1
        and isinstance(non_empty[0], str)
        and len(non_empty[0]) > TITLE_CELL_MIN_LENGTH
    )


def detect_header_row(rows: list[list[Any]], scan_rows: int = HEADER_SCAN_ROWS) -> int | None:
    """
    Index of the header row: the row among the first scan_rows with the most
    non-empty cells, ignoring single long-cell title rows. Earliest row wins ties.
    None when no candidate row has any content.
    """
    best_index: int | None = None
    best_count = 0
    for i, row in enumerate(rows[:scan_rows]):
        cells = [sanitize_cell(c) for c in row]
        if _is_title_row(cells):
            continue
        count = sum(1 for c in cells if not is_blank(c))
        if count > best_count:
            best_index, best_count = i, count
    return best_index


def header_labels(row: list[Any]) -> list[str]:
    """Header cells as text; datetime headers use their ISO date."""
    labels = []
    for cell in row:
        value = sanitize_cell(cell)
        if value is None:
            labels.append("")
        elif isinstance(value, datetime):
            labels.append(value.date().isoformat())
        else:
            labels.append(str(value).strip())
    return labels


def rows_to_records(header: list[str], rows: list[list[Any]]) -> list[dict[str, Any]]:
    """Dicts keyed by header text; blank headers and overflow cells become col_<n>."""
    records = []
    for row in rows:
        record: dict[str, Any] = {}
        for i, cell in enumerate(row):
            key = header[i] if i < len(header) and header[i] else f"col_{i + 1}"
            record[key] = sanitize_cell(cell)
        records.append(record)
    return records
