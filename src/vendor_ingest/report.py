"""Excel preview writer — produces Line_Items_Preview.xlsx.

The preview is what a buyer opens before committing: a Summary sheet with
the detected layout and mapping, the mapped line items as an Excel table,
every row issue, and the first raw rows of the source sheet.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

if TYPE_CHECKING:
    from vendor_ingest.pipeline import PipelineResult

PREVIEW_FILENAME = "Line_Items_Preview.xlsx"
PREVIEW_ROWS = 10
LINE_ITEMS_TABLE = "LineItems"

# ── Styles ───────────────────────────────────────────────────────

HEAD_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEAD_FILL = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="1F4E78")
MUTED_FONT = Font(name="Calibri", size=10, color="808080")
BOLD_FONT = Font(name="Calibri", bold=True, size=11)
ISSUE_FONT = Font(name="Calibri", size=10, color="C00000")
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")
BAND_FILL = PatternFill(start_color="DDEBF7", end_color="DDEBF7", fill_type="solid")
STATUS_FILLS = {
    True: PatternFill(start_color="E2EFDA", end_color="E2EFDA", fill_type="solid"),
    False: PatternFill(start_color="FCE4D6", end_color="FCE4D6", fill_type="solid"),
}

CURRENCY_FMT = "#,##0.00"
INT_FMT = "#,##0"
QTY_FMT = "#,##0.##"
RATE_FMT = "0.0000"

NUMBER_FORMATS: dict[str, str] = {
    "source_row": INT_FMT,
    "row": INT_FMT,
    "sheet_row": INT_FMT,
    "cost_net": CURRENCY_FMT,
    "quantity": QTY_FMT,
    "fx_rate_to_campaign": RATE_FMT,
}

_MAX_COL_WIDTH = 40
_FORMULA_TRIGGERS = ("=", "+", "-", "@")


# ── Cells ────────────────────────────────────────────────────────


def _cell_value(val: Any) -> Any:
    """Blank for missing values; text that Excel would evaluate gets a leading quote."""
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return None
    if isinstance(val, str) and not val.startswith("'") and val.lstrip()[:1] in _FORMULA_TRIGGERS:
        return "'" + val
    return val


def _column_widths(df: pd.DataFrame) -> list[int]:
    widths = []
    for col in df.columns:
        longest = max([len(str(col)), *(len(str(v)) for v in df[col].head(300) if not pd.isna(v))])
        widths.append(min(longest + 3, _MAX_COL_WIDTH))
    return widths


def _write_frame(wb: Workbook, title: str, df: pd.DataFrame, *, table_name: str | None = None) -> Worksheet:
    """Write *df* as a sheet: styled header, number formats, frozen header row.

    With *table_name* and at least one data row the range becomes an Excel
    table; otherwise the header gets a plain auto-filter.
    """
    ws = wb.create_sheet(title=title)
    if df.columns.empty:
        ws["A1"] = "No data"
        ws["A1"].font = MUTED_FONT
        return ws

    columns = [str(c) for c in df.columns]
    ws.append([_cell_value(c) for c in columns])
    for cell in ws[1]:
        cell.font = HEAD_FONT
        cell.fill = HEAD_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

    formats = [NUMBER_FORMATS.get(c.lower()) for c in columns]
    for values in df.itertuples(index=False, name=None):
        ws.append([_cell_value(v) for v in values])
        for cell, fmt in zip(ws[ws.max_row], formats):
            if fmt:
                cell.number_format = fmt

    for idx, width in enumerate(_column_widths(df), 1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    ws.freeze_panes = "A2"

    if len(df) == 0:
        return ws
    if table_name:
        table = Table(displayName=table_name, ref=ws.dimensions)
        table.tableStyleInfo = TableStyleInfo(name="TableStyleMedium2", showRowStripes=True)
        ws.add_table(table)
    else:
        ws.auto_filter.ref = ws.dimensions
    return ws


# ── Summary ──────────────────────────────────────────────────────


def _summary_facts(result: PipelineResult) -> list[tuple[str, Any, str | None]]:
    report = result.report()
    policy = result.mapping.category
    return [
        ("Sheet", report.sheet, None),
        ("Header Row", report.header_row, INT_FMT),
        ("Vendor Type", report.vendor_type, None),
        ("Mode", "guided" if result.mapping.guided else "auto", None),
        ("Category", policy.constant or f"column {policy.source_header!r}", None),
        ("Rows In", report.rows_in, INT_FMT),
        ("Line Items", report.rows_out, INT_FMT),
        ("Total Cost", result.batch.total_cost, CURRENCY_FMT),
        ("Issues", len(report.issues), INT_FMT),
        ("Ready To Commit", "yes" if result.batch.can_commit else "no", None),
    ]


def _write_summary(wb: Workbook, result: PipelineResult) -> None:
    ws = wb.create_sheet(title="Summary")
    ws["A1"] = "vendor-sheet-ingest — Mapping Preview"
    ws["A1"].font = TITLE_FONT
    ws["A2"] = f"Generated {datetime.now(timezone.utc):%Y-%m-%d %H:%M} UTC"
    ws["A2"].font = MUTED_FONT

    row = 4
    for label, value, fmt in _summary_facts(result):
        ws.cell(row=row, column=1, value=label).font = BOLD_FONT
        cell = ws.cell(row=row, column=2, value=_cell_value(value))
        if fmt:
            cell.number_format = fmt
            cell.alignment = Alignment(horizontal="right")
        row += 1
    ready_fill = STATUS_FILLS[result.batch.can_commit]
    for col in (1, 2):
        ws.cell(row=row - 1, column=col).fill = ready_fill

    for warning in result.batch.warnings:
        ws.cell(row=row, column=1, value=f"⚠ {warning}").font = WARN_FONT
        row += 1

    row += 1
    for col, heading in enumerate(("Field", "Source Header"), 1):
        cell = ws.cell(row=row, column=col, value=heading)
        cell.font = BOLD_FONT
        cell.fill = BAND_FILL
    row += 1
    mapped = [(name, header) for name, header in result.mapping.fields.items()]
    mapped += [(f"({role})", header) for role, header in result.mapping.aux.items()]
    for name, header in mapped:
        ws.cell(row=row, column=1, value=name)
        ws.cell(row=row, column=2, value=_cell_value(header))
        row += 1

    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 32


def _source_preview_frame(result: PipelineResult) -> pd.DataFrame:
    headers = list(result.detection.headers)
    rows = [[r.row_number, *(r.get(h) for h in headers)] for r in result.detection.rows[:PREVIEW_ROWS]]
    return pd.DataFrame(rows, columns=["sheet_row", *headers])


# ── Public API ───────────────────────────────────────────────────


def write_preview_workbook(out_dir: Path, result: PipelineResult) -> Path:
    """Write ``Line_Items_Preview.xlsx`` and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    default_sheet = wb.active
    if default_sheet is not None:
        wb.remove(default_sheet)

    _write_summary(wb, result)
    _write_frame(wb, "Line_Items", result.batch.records_frame(), table_name=LINE_ITEMS_TABLE)
    issues = _write_frame(wb, "Issues", result.batch.issues_frame())
    for (cell,) in issues.iter_rows(min_row=2, min_col=2, max_col=2):
        cell.font = ISSUE_FONT
    _write_frame(wb, "Source_Preview", _source_preview_frame(result))

    target = out_dir / PREVIEW_FILENAME
    partial = target.with_name(f"{target.stem}.tmp.xlsx")
    wb.save(partial)
    partial.replace(target)
    return target
