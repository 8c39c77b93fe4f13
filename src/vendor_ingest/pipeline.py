"""Ingest pipeline — pure stages plus a single-file session.

``(bytes, overrides) -> header detection -> mapping spec -> mapped batch``

Each stage is a pure function of the previous stage's output, so changing
an override simply re-runs everything downstream of the grid.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import pandas as pd

from vendor_ingest.classify import VendorType, classify_headers
from vendor_ingest.emitter import MappedBatch
from vendor_ingest.errors import FileFormatError
from vendor_ingest.grid import crop_with_overrides
from vendor_ingest.headers import detect
from vendor_ingest.io import Workbook, load_workbook
from vendor_ingest.mapper import auto_map, guided_map
from vendor_ingest.models import HeaderDetection, IngestReport, Issue, MappedRecord, MappingSpec, Overrides
from vendor_ingest.normalize import NumberLocale, ParseStats, normalize_row
from vendor_ingest.store import LineItemStore
from vendor_ingest.validate import parse_warnings, validate_rows

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 10


@dataclass(frozen=True)
class GuidedMapping:
    """Caller-chosen assignments; see :func:`vendor_ingest.mapper.guided_map`."""

    assignments: Mapping[str, str] = field(default_factory=dict)
    category: str | None = None
    category_header: str | None = None


@dataclass(frozen=True)
class Preview:
    """Read-only view for a UI: headers, leading raw rows, output, issues."""

    headers: list[str]
    rows: list[dict[str, str]]
    records: list[MappedRecord]
    issues: list[Issue]


@dataclass(frozen=True)
class PipelineResult:
    detection: HeaderDetection
    vendor_type: VendorType
    mapping: MappingSpec
    batch: MappedBatch

    def preview(self, n: int = PREVIEW_ROWS) -> Preview:
        return Preview(
            headers=list(self.detection.headers),
            rows=[dict(r.values) for r in self.detection.rows[:n]],
            records=list(self.batch.records),
            issues=list(self.batch.issues),
        )

    def report(self) -> IngestReport:
        rows_in = len(self.detection.rows)
        rows_out = len(self.batch.records)
        return IngestReport(
            rows_in=rows_in,
            rows_out=rows_out,
            dropped_rows=rows_in - rows_out,
            sheet=self.detection.sheet_name,
            header_row=self.detection.header_row_number,
            vendor_type=self.vendor_type.value,
            mapping=self.mapping.to_dict(),
            issues=[i.message for i in self.batch.issues],
            warnings=list(self.batch.warnings),
        )


# ── Stages ───────────────────────────────────────────────────────


def select_sheet(workbook: Workbook, name: str | None = None) -> tuple[str, pd.DataFrame]:
    if not workbook:
        raise FileFormatError("Workbook has no sheets")
    if name is None:
        return next(iter(workbook.items()))
    if name not in workbook:
        raise FileFormatError(f"Sheet {name!r} not found. Available: {', '.join(workbook)}")
    return name, workbook[name]


def prepare_sheet(workbook: Workbook, overrides: Overrides) -> HeaderDetection:
    """Select, crop and split the chosen sheet into headers + body rows."""
    name, grid = select_sheet(workbook, overrides.selected_sheet)
    cropped = crop_with_overrides(grid, overrides)
    return detect(
        cropped,
        sheet_name=name,
        manual_header_row=overrides.manual_header_row,
        row_offset=overrides.start_row - 1,
    )


def build_mapping(
    detection: HeaderDetection,
    guided: GuidedMapping | None = None,
    *,
    vendor_type: VendorType | None = None,
) -> MappingSpec:
    if guided is None:
        if vendor_type is None:
            vendor_type = classify_headers(detection.headers)
        return auto_map(detection.headers, vendor_type)
    return guided_map(
        detection.headers,
        guided.assignments,
        category=guided.category,
        category_header=guided.category_header,
    )


def map_rows(
    detection: HeaderDetection,
    mapping: MappingSpec,
    *,
    locale: NumberLocale = "auto",
    strict: bool = False,
) -> MappedBatch:
    """Normalize and validate every body row under *mapping*."""
    stats = ParseStats()
    normalized = [normalize_row(row, mapping, locale=locale, stats=stats) for row in detection.rows]
    records, issues = validate_rows(normalized, strict=strict)
    logger.info("Mapped %d of %d row(s); %d issue(s)", len(records), len(normalized), len(issues))
    return MappedBatch(
        records=tuple(records),
        issues=tuple(issues),
        warnings=tuple(parse_warnings(stats)),
        guided=mapping.guided,
    )


def run_workbook(
    workbook: Workbook,
    overrides: Overrides | None = None,
    guided: GuidedMapping | None = None,
    *,
    locale: NumberLocale = "auto",
    strict: bool = False,
) -> PipelineResult:
    detection = prepare_sheet(workbook, overrides or Overrides())
    vendor_type = classify_headers(detection.headers)
    mapping = build_mapping(detection, guided, vendor_type=vendor_type)
    batch = map_rows(detection, mapping, locale=locale, strict=strict)
    return PipelineResult(detection=detection, vendor_type=vendor_type, mapping=mapping, batch=batch)


def run(
    data: bytes,
    filename: str,
    overrides: Overrides | None = None,
    guided: GuidedMapping | None = None,
    *,
    locale: NumberLocale = "auto",
    strict: bool = False,
) -> PipelineResult:
    """Decode *data* and run every stage."""
    return run_workbook(load_workbook(data, filename), overrides, guided, locale=locale, strict=strict)


# ── Session ──────────────────────────────────────────────────────


class IngestSession:
    """State for one user working on one file at a time.

    Choosing a new file discards everything derived from the previous one.
    A guided mapping is kept across override changes only while the
    detected headers stay the same.
    """

    def __init__(self, *, locale: NumberLocale = "auto", strict: bool = False) -> None:
        self.locale: NumberLocale = locale
        self.strict = strict
        self._clear()

    def _clear(self) -> None:
        self.filename: str | None = None
        self.workbook: Workbook | None = None
        self.overrides = Overrides()
        self.guided: GuidedMapping | None = None
        self.result: PipelineResult | None = None
        self._last_headers: list[str] | None = None

    @property
    def sheet_names(self) -> list[str]:
        return list(self.workbook or {})

    def select_file(self, data: bytes, filename: str) -> PipelineResult:
        self._clear()
        self.workbook = load_workbook(data, filename)
        self.filename = filename
        return self._refresh()

    def update_overrides(self, **changes: Any) -> PipelineResult:
        self.overrides = replace(self.overrides, **changes)
        return self._refresh()

    def apply_guided(self, guided: GuidedMapping | None) -> PipelineResult:
        previous, previous_result = self.guided, self.result
        self.guided = guided
        try:
            return self._refresh()
        except ValueError:
            self.guided, self.result = previous, previous_result
            raise

    def _refresh(self) -> PipelineResult:
        if self.workbook is None:
            raise FileFormatError("No file selected")
        self.result = None
        detection = prepare_sheet(self.workbook, self.overrides)
        # compared against the last headers detected, even across failed refreshes
        previous, self._last_headers = self._last_headers, detection.headers
        if self.guided is not None and previous is not None and previous != detection.headers:
            logger.info("Headers changed; dropping guided mapping")
            self.guided = None
        vendor_type = classify_headers(detection.headers)
        mapping = build_mapping(detection, self.guided, vendor_type=vendor_type)
        batch = map_rows(detection, mapping, locale=self.locale, strict=self.strict)
        self.result = PipelineResult(
            detection=detection, vendor_type=vendor_type, mapping=mapping, batch=batch
        )
        return self.result

    def commit(self, store: LineItemStore, campaign_id: str) -> int:
        if self.result is None:
            raise FileFormatError("No file selected")
        return self.result.batch.commit(store, campaign_id)
