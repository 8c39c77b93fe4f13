"""Row validation — required fields and numeric sanity per row."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from vendor_ingest.errors import MappingAbortError
from vendor_ingest.models import Issue, MappedRecord
from vendor_ingest.normalize import NormalizedRow, ParseStats

logger = logging.getLogger(__name__)


def row_problems(row: NormalizedRow) -> list[str]:
    """Return every issue message for *row*; empty when it can be emitted."""
    n = row.row_number
    problems: list[str] = []
    if not row.vendor:
        problems.append(f"Row {n}: vendor missing")
    if not row.cat:
        problems.append(f"Row {n}: category missing")
    if not math.isfinite(row.cost_net) or row.cost_net < 0:
        problems.append(f"Row {n}: cost not found")
    fx = row.fx_rate_to_campaign
    if fx is not None and not (math.isfinite(fx) and fx > 0):
        problems.append(f"Row {n}: fx rate must be a positive number")
    return problems


def to_record(row: NormalizedRow) -> MappedRecord:
    return MappedRecord(
        vendor=row.vendor or "",
        cat=row.cat or "",
        cost_net=row.cost_net,
        description=row.description,
        unit=row.unit,
        quantity=row.quantity,
        geography=row.geography,
        audience_descriptor=row.audience_descriptor,
        currency=row.currency,
        fx_rate_to_campaign=row.fx_rate_to_campaign,
        source_row=row.row_number,
    )


def validate_rows(
    rows: Iterable[NormalizedRow], *, strict: bool = False
) -> tuple[list[MappedRecord], list[Issue]]:
    """Split *rows* into emitted records and issues, keeping input order.

    Failing rows are skipped and reported; the rest are still emitted.
    With ``strict`` the first failing row raises :class:`MappingAbortError`
    and nothing is emitted.
    """
    records: list[MappedRecord] = []
    issues: list[Issue] = []
    for row in rows:
        problems = row_problems(row)
        if not problems:
            records.append(to_record(row))
            continue
        if strict:
            raise MappingAbortError(problems[0], row.row_number)
        for message in problems:
            logger.warning(message)
            issues.append(Issue(row=row.row_number, message=message))
    return records, issues


def parse_warnings(stats: ParseStats) -> list[str]:
    """Human-readable notes about separator guesses made while parsing."""
    warnings: list[str] = []
    if stats.eu_decimal:
        suffix = "" if stats.eu_decimal == 1 else "s"
        warnings.append(f"Detected EU decimal commas: {stats.eu_decimal} value{suffix}")
    if stats.ambiguous:
        suffix = "" if stats.ambiguous == 1 else "s"
        warnings.append(
            f"Detected {stats.ambiguous} ambiguous numeric value{suffix} "
            "(example: 1,234); interpreted as thousands separators"
        )
    return warnings
