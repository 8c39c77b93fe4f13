"""Data models shared across the ingest pipeline."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from numbers import Integral
from typing import Any

_COLUMN_LETTERS_RE = re.compile(r"^[A-Za-z]+$")


def _count(value: Any, field_name: str, *, minimum: int = 0) -> int:
    """Validate an integer count; ``bool`` is rejected even though it is an ``int``."""
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    if value < minimum:
        raise ValueError(f"{field_name} must be >= {minimum}")
    return int(value)


def _messages(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str) or not all(isinstance(v, str) for v in values):
        raise TypeError(f"{field_name} must be a list of strings")
    return list(values)


def _json_number(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


# ── Session input ────────────────────────────────────────────────


@dataclass(frozen=True)
class Overrides:
    """User adjustments re-applied to the current file without re-uploading.

    ``start_row`` and ``manual_header_row`` are 1-based; ``manual_header_row``
    counts from the top of the cropped region, not the sheet.
    """

    start_row: int = 1
    start_col: str = "A"
    manual_header_row: int | None = None
    selected_sheet: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_row", _count(self.start_row, "start_row", minimum=1))
        col = (self.start_col or "A").strip()
        if not _COLUMN_LETTERS_RE.fullmatch(col):
            raise ValueError(f"start_col must be column letters like A or AB, got {self.start_col!r}")
        object.__setattr__(self, "start_col", col.upper())
        if self.manual_header_row is not None:
            object.__setattr__(
                self,
                "manual_header_row",
                _count(self.manual_header_row, "manual_header_row", minimum=1),
            )


# ── Detection output ─────────────────────────────────────────────


@dataclass(frozen=True)
class RawRow:
    """One body row keyed by header label.

    ``row_number`` is the 1-based row in the source sheet.
    """

    row_number: int
    values: dict[str, str]

    def get(self, header: str | None) -> str:
        if header is None:
            return ""
        return self.values.get(header, "")


@dataclass(frozen=True)
class HeaderDetection:
    sheet_name: str
    header_index: int  # 0-based within the cropped grid
    headers: list[str]
    rows: list[RawRow]
    score: int | None = None  # None when the header row was forced
    row_offset: int = 0  # sheet rows cropped away above the region

    @property
    def header_row_number(self) -> int:
        """1-based sheet row of the header."""
        return self.row_offset + self.header_index + 1


# ── Mapping ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class CategoryPolicy:
    """How each record gets its ``cat``: a fixed value or a per-row header.

    ``fallback`` fills rows whose header cell is blank.
    """

    constant: str | None = None
    source_header: str | None = None
    fallback: str | None = None

    def __post_init__(self) -> None:
        if (self.constant is None) == (self.source_header is None):
            raise ValueError("category policy needs exactly one of constant or source_header")

    @classmethod
    def fixed(cls, value: str) -> CategoryPolicy:
        return cls(constant=value)

    @classmethod
    def from_header(cls, header: str, fallback: str | None = None) -> CategoryPolicy:
        return cls(source_header=header, fallback=fallback)

    def to_dict(self) -> dict[str, Any]:
        return {
            "constant": self.constant,
            "source_header": self.source_header,
            "fallback": self.fallback,
        }


@dataclass(frozen=True)
class MappingSpec:
    """Canonical field -> header label, plus the category policy.

    ``aux`` holds the extra columns the normalizer reads but never emits
    directly: market/state for geography and the operands of the cost
    formulas (cpm, impressions, unit_rate, insertions, cpp, grps, rate,
    quantity).
    """

    fields: dict[str, str]
    category: CategoryPolicy
    aux: dict[str, str] = field(default_factory=dict)
    guided: bool = False

    def header_for(self, name: str) -> str | None:
        return self.fields.get(name)

    def aux_for(self, role: str) -> str | None:
        return self.aux.get(role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": dict(self.fields),
            "aux": dict(self.aux),
            "category": self.category.to_dict(),
            "guided": self.guided,
        }


# ── Output ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Issue:
    row: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "message": self.message}


@dataclass(frozen=True)
class MappedRecord:
    """Canonical line item. Never mutated after emission."""

    vendor: str
    cat: str
    cost_net: float
    description: str | None = None
    unit: str | None = None
    quantity: float | None = None
    geography: str | None = None
    audience_descriptor: str | None = None
    currency: str | None = None
    fx_rate_to_campaign: float | None = None
    source_row: int = 0

    def __post_init__(self) -> None:
        if not self.vendor:
            raise ValueError("vendor must be non-empty")
        if not self.cat:
            raise ValueError("cat must be non-empty")
        if not math.isfinite(self.cost_net) or self.cost_net < 0:
            raise ValueError("cost_net must be a finite number >= 0")
        if self.fx_rate_to_campaign is not None and not (
            math.isfinite(self.fx_rate_to_campaign) and self.fx_rate_to_campaign > 0
        ):
            raise ValueError("fx_rate_to_campaign must be positive when present")

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor": self.vendor,
            "cat": self.cat,
            "cost_net": self.cost_net,
            "description": self.description,
            "unit": self.unit,
            "quantity": _json_number(self.quantity),
            "geography": self.geography,
            "audience_descriptor": self.audience_descriptor,
            "currency": self.currency,
            "fx_rate_to_campaign": self.fx_rate_to_campaign,
        }

    def to_store_payload(self, campaign_id: str) -> dict[str, Any]:
        payload = {"campaign_id": campaign_id, "sub_group_id": None}
        payload.update(self.to_dict())
        return payload


@dataclass
class IngestReport:
    """Quality report emitted alongside every mapping run.

    Rows that produced no line item are counted in ``dropped_rows``.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    sheet: str = ""
    header_row: int = 0
    vendor_type: str = "UNKNOWN"
    mapping: dict[str, Any] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _count(self.rows_in, "rows_in")
        self.rows_out = _count(self.rows_out, "rows_out")
        self.dropped_rows = _count(self.dropped_rows, "dropped_rows")
        self.header_row = _count(self.header_row, "header_row")
        self.issues = _messages(self.issues, "issues")
        self.warnings = _messages(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError(f"rows_out ({self.rows_out}) exceeds rows_in ({self.rows_in})")
        if self.dropped_rows != self.rows_in - self.rows_out:
            raise ValueError(f"dropped_rows ({self.dropped_rows}) must be rows_in - rows_out")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "vendor-sheet-ingest"
    version: str = ""
    command: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""
    committed: int = 0

    def __post_init__(self) -> None:
        self.rows_in = _count(self.rows_in, "rows_in")
        self.rows_out = _count(self.rows_out, "rows_out")
        self.committed = _count(self.committed, "committed")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
