"""Header row detection and header-set construction.

Vendor exports often put logos, titles or insertion-order boilerplate
above the real table, so the header row is chosen by scoring each row in a
bounded window instead of assuming row 1.

Scoring
-------
Every non-blank cell of a candidate row is normalized (see
:func:`normalize_label`). A cell that exactly matches a known header
synonym contributes :data:`SYNONYM_HIT`; any other cell that is short and
contains a letter contributes :data:`SHORT_TEXT_HIT`. The row score is::

    HIT_WEIGHT * hits + non_empty_cells

The first row with the strictly greatest score wins. When nothing beats
:data:`HEADER_SCORE_SENTINEL` the first row is used.
"""

from __future__ import annotations

import logging
import re

import pandas as pd

from vendor_ingest.errors import FileFormatError
from vendor_ingest.models import HeaderDetection, RawRow

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 50
"""Rows examined as header candidates (the detection window)."""

HIT_WEIGHT = 3
SYNONYM_HIT = 2
SHORT_TEXT_HIT = 1
SHORT_TEXT_MAX_LEN = 30
HEADER_SCORE_SENTINEL = 0

HEADER_SYNONYMS: frozenset[str] = frozenset(
    {
        # vendor
        "vendor", "vendor name", "publisher", "publication", "newspaper", "station",
        "network", "partner", "supplier", "media vendor", "outlet", "property",
        # category
        "category", "cat", "channel", "media type", "media", "medium",
        # cost and rates
        "cost", "net cost", "cost net", "net", "total", "total cost", "net total",
        "gross", "gross cost", "amount", "spend", "budget", "investment",
        "net per unit", "net rate", "rate", "unit rate", "cpm", "cpp", "cpc",
        "impressions", "insertions", "ins", "spots", "grps", "quantity", "qty",
        "units", "faces",
        # geography
        "market", "state", "dma", "geo", "geography", "region", "city",
        "province", "location",
        # currency
        "currency", "curr", "ccy", "fx", "fx rate", "exchange rate",
        # dates
        "date", "dates", "start", "end", "start date", "end date", "flight",
        "flight dates", "flight start", "flight end", "week", "month",
        "insertion date", "air date", "run date",
        # descriptive
        "description", "placement", "unit", "size", "ad size", "program",
        "daypart", "audience",
    }
)

_SEPARATOR_RE = re.compile(r"[\s_]+")
_DISALLOWED_RE = re.compile(r"[^\w %/+.\-]")


def normalize_label(value: object) -> str:
    """Case-fold, collapse whitespace/underscores, drop stray punctuation."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    text = _SEPARATOR_RE.sub(" ", str(value).casefold())
    text = _DISALLOWED_RE.sub("", text)
    return _SEPARATOR_RE.sub(" ", text).strip()


def _row_cells(grid: pd.DataFrame, index: int) -> list[str]:
    return ["" if pd.isna(v) else str(v) for v in grid.iloc[index].tolist()]


def score_header_row(cells: list[str]) -> int:
    hits = 0
    non_empty = 0
    for cell in cells:
        if not str(cell).strip():
            continue
        non_empty += 1
        label = normalize_label(cell)
        if label in HEADER_SYNONYMS:
            hits += SYNONYM_HIT
        elif label and len(label) <= SHORT_TEXT_MAX_LEN and any(ch.isalpha() for ch in label):
            hits += SHORT_TEXT_HIT
    return HIT_WEIGHT * hits + non_empty


def detect_header_row(grid: pd.DataFrame, manual_header_row: int | None = None) -> tuple[int, int | None]:
    """Return ``(0-based header index, score)``; score is None when forced."""
    n_rows = grid.shape[0]
    if n_rows == 0:
        raise FileFormatError("No rows in the selected region")
    if grid.shape[1] == 0:
        raise FileFormatError("No columns in the selected region")

    if manual_header_row is not None:
        index = manual_header_row - 1
        if index >= n_rows:
            raise FileFormatError(
                f"Header row {manual_header_row} is outside the selected region ({n_rows} rows)"
            )
        return index, None

    best_index = 0
    best_score = HEADER_SCORE_SENTINEL
    for i in range(min(n_rows, HEADER_SCAN_ROWS)):
        score = score_header_row(_row_cells(grid, i))
        if score > best_score:
            best_score = score
            best_index = i
            logger.debug("Row %d: score=%d (new best)", i, score)
        else:
            logger.debug("Row %d: score=%d", i, score)
    return best_index, best_score


def build_header_set(cells: list[str]) -> list[str]:
    """Normalize *cells* into unique labels; blanks become ``col_N``."""
    labels = [normalize_label(cell) or f"col_{i + 1}" for i, cell in enumerate(cells)]
    seen: set[str] = set()
    counts: dict[str, int] = {}
    headers: list[str] = []
    for label in labels:
        if label not in seen:
            seen.add(label)
            headers.append(label)
            continue
        n = counts.get(label, 1) + 1
        candidate = f"{label}_{n}"
        while candidate in seen:
            n += 1
            candidate = f"{label}_{n}"
        counts[label] = n
        seen.add(candidate)
        headers.append(candidate)
    return headers


def split_body(
    grid: pd.DataFrame, header_index: int, headers: list[str], *, row_offset: int = 0
) -> list[RawRow]:
    """Turn every non-blank row below the header into a :class:`RawRow`."""
    rows: list[RawRow] = []
    for i in range(header_index + 1, grid.shape[0]):
        cells = _row_cells(grid, i)
        if all(not c.strip() for c in cells):
            continue
        values = {h: (cells[j] if j < len(cells) else "") for j, h in enumerate(headers)}
        rows.append(RawRow(row_number=row_offset + i + 1, values=values))
    return rows


def detect(
    grid: pd.DataFrame,
    *,
    sheet_name: str = "",
    manual_header_row: int | None = None,
    row_offset: int = 0,
) -> HeaderDetection:
    """Pick the header row of a cropped *grid* and split off the body."""
    header_index, score = detect_header_row(grid, manual_header_row)
    headers = build_header_set(_row_cells(grid, header_index))
    rows = split_body(grid, header_index, headers, row_offset=row_offset)
    logger.info(
        "Header row %d (%s): %s",
        row_offset + header_index + 1,
        "manual" if score is None else f"score={score}",
        ", ".join(headers),
    )
    return HeaderDetection(
        sheet_name=sheet_name,
        header_index=header_index,
        headers=headers,
        rows=rows,
        score=score,
        row_offset=row_offset,
    )
