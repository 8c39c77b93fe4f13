"""I/O helpers — decode uploaded workbooks, write JSON artifacts."""

from __future__ import annotations

import csv
import json
import logging
import math
import re
import zipfile
from datetime import date, datetime, time
from io import BytesIO, StringIO
from pathlib import Path, PurePath
from typing import Any

import openpyxl
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from vendor_ingest.errors import FileFormatError, ParserUnavailableError

logger = logging.getLogger(__name__)

Workbook = dict[str, pd.DataFrame]
"""Sheet name -> Cell Grid, in workbook order."""

TEXT_DELIMITERS: dict[str, str | None] = {".csv": ",", ".tsv": "\t", ".txt": None}
OPENPYXL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
XLRD_SUFFIXES = (".xls",)
SUPPORTED_SUFFIXES = (*TEXT_DELIMITERS, *OPENPYXL_SUFFIXES, *XLRD_SUFFIXES)

_SNIFF_DELIMITERS = ",;\t|"
_CURRENCY_TAG_RE = re.compile(r"\[\$([^\]-]*)(?:-[0-9A-Fa-f]+)?\]")
_BRACKET_RE = re.compile(r"\[[^\]]*\]")
_QUOTED_RE = re.compile(r'"([^"]*)"')
_CURRENCY_CHARS = "$€£¥"


# ── Cell grids ───────────────────────────────────────────────────


def grid_from_rows(rows: list[list[str]]) -> pd.DataFrame:
    """Build a rectangular string grid, padding short rows with ``""``."""
    width = max((len(r) for r in rows), default=0)
    padded = [[str(v) for v in r] + [""] * (width - len(r)) for r in rows]
    return pd.DataFrame(padded, columns=range(width), dtype="string")


def is_blank_grid(grid: pd.DataFrame) -> bool:
    if grid.empty:
        return True
    return bool((grid.fillna("").apply(lambda col: col.str.strip()) == "").all().all())


# ── Display formatting of binary cells ───────────────────────────


def _format_general(value: float) -> str:
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return f"{value:.15g}"


def _strip_literals(section: str) -> tuple[str, str, str]:
    """Return ``(placeholders, prefix, suffix)`` for one format section."""
    symbol = ""
    tag = _CURRENCY_TAG_RE.search(section)
    if tag:
        symbol = tag.group(1)
    section = _BRACKET_RE.sub("", section)
    section = _QUOTED_RE.sub(lambda m: m.group(1) if m.group(1).strip() in _CURRENCY_CHARS else "", section)
    section = section.replace("\\", "").replace("_)", "").replace("_(", "").replace("*", "")

    digits_at = [i for i, ch in enumerate(section) if ch in "0#?"]
    if not digits_at:
        return "", "", ""
    first, last = digits_at[0], digits_at[-1]
    head, body, tail = section[:first], section[first : last + 1], section[last + 1 :]
    prefix = symbol or "".join(ch for ch in head if ch in _CURRENCY_CHARS)
    suffix = "".join(ch for ch in tail if ch in _CURRENCY_CHARS)
    if "%" in tail:
        body += "%"
    return body, prefix, suffix


def _format_number(value: float, number_format: str) -> str:
    if not math.isfinite(value):
        return str(value)
    sections = number_format.split(";")
    negative_section = sections[1] if value < 0 and len(sections) > 1 and sections[1].strip() else None
    section = negative_section if negative_section is not None else sections[0]
    if section.strip().lower() in ("", "general", "@"):
        return _format_general(value)

    body, prefix, suffix = _strip_literals(section)
    if not body:
        return _format_general(value)

    decimals = 0
    if "." in body:
        decimals = sum(1 for ch in body.split(".", 1)[1] if ch in "0#?")
    magnitude = abs(value)
    percent = body.endswith("%")
    if percent:
        magnitude *= 100
    grouped = "," in body.split(".", 1)[0]
    text = f"{magnitude:,.{decimals}f}" if grouped else f"{magnitude:.{decimals}f}"
    text = f"{prefix}{text}{'%' if percent else ''}{suffix}"

    if value < 0:
        if negative_section is None:
            return f"-{text}"
        if "(" in negative_section:
            return f"({text})"
        if "-" in _BRACKET_RE.sub("", negative_section):
            return f"-{text}"
    return text


def format_cell_value(value: Any, number_format: str | None = "General") -> str:
    """Render *value* the way a spreadsheet would display it.

    Covers currency symbols, grouping, fixed decimals, percent and accounting
    negatives. Dates render as ISO text; exotic formats (fractions,
    scientific, locale date codes) fall back to a general rendering.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        if value.time() == time(0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return _format_number(float(value), number_format or "General")
    return str(value)


# ── Decoders ─────────────────────────────────────────────────────


def _decode_text(data: bytes) -> str:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    raise FileFormatError("Could not decode delimited text") from last_exc


def _read_delimited(data: bytes, delimiter: str | None) -> list[list[str]]:
    text = _decode_text(data)
    if delimiter is None:
        try:
            delimiter = csv.Sniffer().sniff(text[:4096], delimiters=_SNIFF_DELIMITERS).delimiter
        except csv.Error:
            delimiter = ","
    try:
        return [list(row) for row in csv.reader(StringIO(text, newline=""), delimiter=delimiter)]
    except csv.Error as exc:
        raise FileFormatError(f"Could not parse delimited text: {exc}") from exc


def _read_openpyxl(data: bytes) -> Workbook:
    try:
        book = openpyxl.load_workbook(BytesIO(data), data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise FileFormatError(f"Could not open spreadsheet container: {exc}") from exc

    sheets: Workbook = {}
    for ws in book.worksheets:
        rows = [
            [format_cell_value(cell.value, cell.number_format) for cell in row]
            for row in ws.iter_rows()
        ]
        sheets[ws.title] = grid_from_rows(rows)
    return sheets


def _import_xlrd() -> Any:
    try:
        import xlrd
    except ImportError as exc:
        raise ParserUnavailableError(
            "Reading .xls files needs the 'xlrd' package. "
            "Either convert to .xlsx or add dependency: pip install xlrd"
        ) from exc
    return xlrd


def _xls_cell_text(xlrd: Any, book: Any, sheet: Any, r: int, c: int) -> str:
    cell = sheet.cell(r, c)
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return ""
    if ctype == xlrd.XL_CELL_TEXT:
        return str(cell.value)
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return format_cell_value(bool(cell.value))
    if ctype == xlrd.XL_CELL_ERROR:
        return xlrd.error_text_from_code.get(cell.value, "#ERR")
    if ctype == xlrd.XL_CELL_DATE:
        return format_cell_value(xlrd.xldate.xldate_as_datetime(cell.value, book.datemode))
    xf = book.xf_list[sheet.cell_xf_index(r, c)]
    fmt = book.format_map.get(xf.format_key)
    return format_cell_value(float(cell.value), fmt.format_str if fmt else "General")


def _read_xlrd(data: bytes) -> Workbook:
    xlrd = _import_xlrd()
    try:
        book = xlrd.open_workbook(file_contents=data, formatting_info=True)
    except (xlrd.XLRDError, OSError, ValueError, IndexError) as exc:
        raise FileFormatError(f"Could not open legacy spreadsheet: {exc}") from exc

    sheets: Workbook = {}
    for sheet in book.sheets():
        rows = [
            [_xls_cell_text(xlrd, book, sheet, r, c) for c in range(sheet.ncols)]
            for r in range(sheet.nrows)
        ]
        sheets[sheet.name] = grid_from_rows(rows)
    return sheets


# ── Loading ──────────────────────────────────────────────────────


def load_workbook(data: bytes, filename: str) -> Workbook:
    """Decode an uploaded byte stream into ``{sheet name: cell grid}``.

    Raises
    ------
    FileFormatError
        Unsupported extension, corrupt container, zero sheets, or an empty
        first sheet.
    ParserUnavailableError
        The decoder for a legacy ``.xls`` file is not installed.
    """
    suffix = PurePath(filename).suffix.lower()
    if suffix in TEXT_DELIMITERS:
        name = PurePath(filename).stem or "Sheet1"
        sheets: Workbook = {name: grid_from_rows(_read_delimited(data, TEXT_DELIMITERS[suffix]))}
    elif suffix in OPENPYXL_SUFFIXES:
        sheets = _read_openpyxl(data)
    elif suffix in XLRD_SUFFIXES:
        sheets = _read_xlrd(data)
    else:
        supported = ", ".join(SUPPORTED_SUFFIXES)
        raise FileFormatError(f"Unsupported file type: {suffix!r}. Use one of {supported}")

    if not sheets:
        raise FileFormatError("Workbook has no sheets")
    first_name, first_grid = next(iter(sheets.items()))
    if is_blank_grid(first_grid):
        raise FileFormatError(f"First sheet {first_name!r} is empty")

    logger.info("Loaded %s: %d sheet(s)", filename, len(sheets))
    return sheets


def load_path(path: Path) -> Workbook:
    """Read *path* from disk and decode it with :func:`load_workbook`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if not path.is_file():
        raise FileFormatError(f"Input path is not a file: {path}")
    return load_workbook(path.read_bytes(), path.name)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
