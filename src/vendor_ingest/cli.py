"""CLI entry point for vendor-sheet-ingest."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from vendor_ingest import REQUIRED_FIELDS, __version__
from vendor_ingest.errors import (
    CommitRefusedError,
    IngestError,
    MappingAbortError,
    ParserUnavailableError,
    StoreError,
)
from vendor_ingest.io import load_path, write_json
from vendor_ingest.mapper import load_profile_lines, parse_mapping_pairs
from vendor_ingest.models import IngestReport, Overrides, RunManifest
from vendor_ingest.pipeline import PREVIEW_ROWS, GuidedMapping, PipelineResult, run_workbook
from vendor_ingest.qc import write_ingest_report
from vendor_ingest.report import write_preview_workbook
from vendor_ingest.store import JsonCampaignStore, JsonLinesLineItemStore
from vendor_ingest.utils import input_fingerprint, utc_timestamp

app = typer.Typer(
    name="vingest",
    help="vendor-sheet-ingest — Map vendor media spreadsheets to campaign line items.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

EXIT_INPUT = 2
EXIT_COMMIT = 3
EXIT_INTERNAL = 1

_INPUT_ERRORS = (FileNotFoundError, OSError, ValueError, ParserUnavailableError, MappingAbortError)


class NumberLocaleOption(str, Enum):
    auto = "auto"
    us = "us"
    eu = "eu"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"vendor-sheet-ingest v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    pkg_logger = logging.getLogger("vendor_ingest")
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, RichHandler):
            pkg_logger.removeHandler(handler)
    if verbose:
        pkg_logger.addHandler(RichHandler(console=console, show_path=False, markup=False))
        pkg_logger.setLevel(logging.DEBUG)
    else:
        pkg_logger.setLevel(logging.WARNING)


def _build_overrides(
    sheet: str | None, start_row: int, start_col: str, header_row: int | None
) -> Overrides:
    return Overrides(
        start_row=start_row,
        start_col=start_col,
        manual_header_row=header_row,
        selected_sheet=sheet,
    )


def _build_guided(
    col_map: list[str] | None,
    profile: Path | None,
    category: str | None,
    category_column: str | None,
) -> GuidedMapping | None:
    """Return a guided mapping when any mapping option is given, else ``None``."""
    assignments = parse_mapping_pairs(load_profile_lines(profile) + (col_map or []))
    if not assignments and category is None and category_column is None:
        return None
    return GuidedMapping(
        assignments=assignments, category=category, category_header=category_column
    )


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    command: str,
    created_at: str,
    report: IngestReport,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
    committed: int = 0,
) -> Path:
    manifest = RunManifest(
        version=__version__,
        command=command,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=report.rows_in,
        rows_out=report.rows_out,
        sha256=input_fingerprint(input_file),
        status=status,
        error_code=error_code,
        error_message=error_message,
        committed=committed,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


@dataclass
class _RunContext:
    command: str
    input_file: Path
    out_dir: Path
    created_at: str

    def fail(self, message: str, *, code: int, report: IngestReport | None = None) -> typer.Exit:
        """Write failure artifacts, print the error and return the exit to raise."""
        if report is None:
            report = IngestReport(warnings=[message])
        report_path = write_ingest_report(self.out_dir, report)
        manifest_path = _write_manifest(
            self.out_dir,
            self.input_file,
            self.command,
            self.created_at,
            report,
            status="failed",
            error_code=code,
            error_message=message,
        )
        _err(message)
        console.print(f"  Ingest report -> {report_path}")
        console.print(f"  Manifest      -> {manifest_path}")
        return typer.Exit(code=code)


def _map_file(
    ctx: _RunContext,
    *,
    overrides_args: tuple[str | None, int, str, int | None],
    guided_args: tuple[list[str] | None, Path | None, str | None, str | None],
    number_locale: NumberLocaleOption,
    strict: bool,
    echo: Callable[..., None],
) -> PipelineResult:
    """Load and map the input, converting every failure into an exit."""
    try:
        overrides = _build_overrides(*overrides_args)
        guided = _build_guided(*guided_args)
    except ValueError as exc:
        raise ctx.fail(str(exc), code=EXIT_INPUT) from exc

    echo("[blue]>[/blue] Loading input file …")
    try:
        workbook = load_path(ctx.input_file)
        echo(f"  {len(workbook)} sheet(s): {', '.join(workbook)}")
        echo("[blue]>[/blue] Detecting headers and mapping rows …")
        result = run_workbook(
            workbook, overrides, guided, locale=number_locale.value, strict=strict
        )
    except MappingAbortError as exc:
        raise ctx.fail(f"Strict mapping stopped: {exc}", code=EXIT_INPUT) from exc
    except _INPUT_ERRORS as exc:
        raise ctx.fail(str(exc), code=EXIT_INPUT) from exc
    except Exception as exc:
        raise ctx.fail(f"Unexpected internal error: {exc}", code=EXIT_INTERNAL) from exc
    return result


def _write_outputs(ctx: _RunContext, result: PipelineResult, echo: Callable[..., None]) -> IngestReport:
    report = result.report()
    items = [{"source_row": r.source_row, **r.to_dict()} for r in result.batch.records]
    items_path = write_json(ctx.out_dir / "line_items.json", items)
    echo(f"  Line items    -> {items_path}")
    report_path = write_ingest_report(ctx.out_dir, report)
    echo(f"  Ingest report -> {report_path}")
    preview_path = write_preview_workbook(ctx.out_dir, result)
    echo(f"  Preview       -> {preview_path}")
    return report


def _print_summary(result: PipelineResult, *, title: str, max_issues: int = 20) -> None:
    report = result.report()
    tbl = RichTable(title=title, show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")

    tbl.add_row("Sheet", report.sheet)
    tbl.add_row("Header row", str(report.header_row))
    tbl.add_row("Vendor type", report.vendor_type)
    tbl.add_row("Mode", "guided" if result.mapping.guided else "auto")
    tbl.add_row("Rows in", str(report.rows_in))
    tbl.add_row("Line items", str(report.rows_out))
    tbl.add_row("Total cost", f"{result.batch.total_cost:,.2f}")
    for warning in report.warnings:
        tbl.add_row("Warning", f"[yellow]{warning}[/yellow]")
    for message in report.issues[:max_issues]:
        tbl.add_row("Issue", f"[red]{message}[/red]")
    if len(report.issues) > max_issues:
        tbl.add_row("Issue", f"… {len(report.issues) - max_issues} more")
    status = "[green]READY[/green]" if result.batch.can_commit else "[red]NEEDS REVIEW[/red]"
    tbl.add_row("Status", status)
    console.print(tbl)


def _issues_message(result: PipelineResult) -> str:
    count = len(result.batch.issues)
    return f"{count} row issue(s) must be resolved before commit"


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """vendor-sheet-ingest CLI."""


# ── inspect command ──────────────────────────────────────────────


@app.command()
def inspect(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a CSV, TSV, TXT, XLSX or XLS vendor sheet.",
        exists=True, readable=True,
    ),
    sheet: str | None = typer.Option(None, "--sheet", help="Sheet name (default: first)."),
    start_row: int = typer.Option(1, "--start-row", help="1-based first row of the table."),
    start_col: str = typer.Option("A", "--start-col", help="First column letter of the table."),
    header_row: int | None = typer.Option(
        None, "--header-row", help="Force the header row (1-based, within the region)."
    ),
    rows: int = typer.Option(PREVIEW_ROWS, "--rows", "-n", help="Raw rows to preview."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    """Show sheets, detected headers, vendor type and the automatic mapping."""
    _configure_logging(verbose)
    try:
        workbook = load_path(input_file)
        overrides = _build_overrides(sheet, start_row, start_col, header_row)
        result = run_workbook(workbook, overrides)
    except _INPUT_ERRORS as exc:
        _err(str(exc))
        raise typer.Exit(code=EXIT_INPUT)

    detection = result.detection
    console.print(Panel(
        f"[bold]vendor-sheet-ingest[/bold] v{__version__}  [dim]inspect[/dim]\n"
        f"Input:  {input_file}\n"
        f"Sheets: {', '.join(workbook)}\n"
        f"Using:  {detection.sheet_name} (header row {detection.header_row_number})\n"
        f"Vendor type: {result.vendor_type.value}",
        title="Inspect", border_style="cyan",
    ))

    mapping_tbl = RichTable(title="Automatic Mapping")
    mapping_tbl.add_column("Field", style="bold")
    mapping_tbl.add_column("Header")
    for field_name, header in result.mapping.fields.items():
        marker = " *" if field_name in REQUIRED_FIELDS else ""
        mapping_tbl.add_row(f"{field_name}{marker}", header)
    policy = result.mapping.category
    mapping_tbl.add_row("cat *", policy.source_header or f"[dim]constant[/dim] {policy.constant}")
    for role, header in result.mapping.aux.items():
        mapping_tbl.add_row(f"[dim]({role})[/dim]", header)
    console.print(mapping_tbl)

    preview = result.preview(rows)
    rows_tbl = RichTable(title=f"First {len(preview.rows)} row(s)")
    for header in preview.headers:
        rows_tbl.add_column(header)
    for raw in preview.rows:
        rows_tbl.add_row(*(raw.get(h, "") for h in preview.headers))
    console.print(rows_tbl)


# ── map command ──────────────────────────────────────────────────


@app.command("map")
def map_command(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a CSV, TSV, TXT, XLSX or XLS vendor sheet.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for line items, ingest report, preview + manifest.",
    ),
    sheet: str | None = typer.Option(None, "--sheet", help="Sheet name (default: first)."),
    start_row: int = typer.Option(1, "--start-row", help="1-based first row of the table."),
    start_col: str = typer.Option("A", "--start-col", help="First column letter of the table."),
    header_row: int | None = typer.Option(
        None, "--header-row", help="Force the header row (1-based, within the region)."
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Guided mapping: field=Header. E.g. --map vendor=Publication --map cost_net=Net",
    ),
    profile: Path | None = typer.Option(
        None, "--profile", help="Profile file of field=Header lines (# comments allowed).",
    ),
    category: str | None = typer.Option(
        None, "--category", help="Constant category for every row (guided mode).",
    ),
    category_column: str | None = typer.Option(
        None, "--category-column", help="Header holding each row's category (guided mode).",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.auto, "--number-locale",
        help="Numeric parsing mode: auto, us, or eu.",
    ),
    strict: bool = typer.Option(
        False, "--strict", help="Stop at the first row missing a required field.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    """Map a vendor sheet to line items and write review artifacts.

    Exit 0 = ready to commit, exit 2 = input problem or unresolved row issues.
    """
    _configure_logging(verbose)
    echo = _printer(quiet)
    out_dir.mkdir(parents=True, exist_ok=True)
    ctx = _RunContext("map", input_file, out_dir, utc_timestamp())

    if not quiet:
        console.print(Panel(
            f"[bold]vendor-sheet-ingest[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Map", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")

    result = _map_file(
        ctx,
        overrides_args=(sheet, start_row, start_col, header_row),
        guided_args=(col_map, profile, category, category_column),
        number_locale=number_locale,
        strict=strict,
        echo=echo,
    )

    try:
        echo("[blue]>[/blue] Writing artifacts …")
        report = _write_outputs(ctx, result, echo)
        if not quiet:
            _print_summary(result, title="Mapping Summary")
        if result.batch.issues:
            _write_manifest(
                out_dir, input_file, ctx.command, ctx.created_at, report,
                status="failed", error_code=EXIT_INPUT, error_message=_issues_message(result),
            )
            _err(_issues_message(result))
            raise typer.Exit(code=EXIT_INPUT)
        manifest_path = _write_manifest(out_dir, input_file, ctx.command, ctx.created_at, report)
        echo(f"  Manifest      -> {manifest_path}")
    except typer.Exit:
        raise
    except Exception as exc:
        raise ctx.fail(
            f"Unexpected internal error: {exc}", code=EXIT_INTERNAL, report=result.report()
        ) from exc


# ── commit command ───────────────────────────────────────────────


@app.command()
def commit(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a CSV, TSV, TXT, XLSX or XLS vendor sheet.",
        exists=True, readable=True,
    ),
    campaign_id: str = typer.Option(..., "--campaign-id", help="Campaign receiving the line items."),
    store: Path = typer.Option(
        ..., "--store", help="JSON Lines file the line items are appended to.",
    ),
    campaigns: Path | None = typer.Option(
        None, "--campaigns", help="JSON file of campaigns; the campaign id must exist in it.",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for line items, ingest report, preview + manifest.",
    ),
    sheet: str | None = typer.Option(None, "--sheet", help="Sheet name (default: first)."),
    start_row: int = typer.Option(1, "--start-row", help="1-based first row of the table."),
    start_col: str = typer.Option("A", "--start-col", help="First column letter of the table."),
    header_row: int | None = typer.Option(
        None, "--header-row", help="Force the header row (1-based, within the region)."
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m", help="Guided mapping: field=Header.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile", help="Profile file of field=Header lines (# comments allowed).",
    ),
    category: str | None = typer.Option(
        None, "--category", help="Constant category for every row (guided mode).",
    ),
    category_column: str | None = typer.Option(
        None, "--category-column", help="Header holding each row's category (guided mode).",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.auto, "--number-locale",
        help="Numeric parsing mode: auto, us, or eu.",
    ),
    strict: bool = typer.Option(
        False, "--strict", help="Stop at the first row missing a required field.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    """Map a vendor sheet and insert its line items into a campaign.

    Nothing is written to the store while any row issue remains.
    Exit 0 = committed, exit 2 = input problem, exit 3 = commit refused or store error.
    """
    _configure_logging(verbose)
    echo = _printer(quiet)
    out_dir.mkdir(parents=True, exist_ok=True)
    ctx = _RunContext("commit", input_file, out_dir, utc_timestamp())

    if not quiet:
        console.print(Panel(
            f"[bold]vendor-sheet-ingest[/bold] v{__version__}\n"
            f"Input:    {input_file}\nCampaign: {campaign_id}\nStore:    {store}",
            title="Commit", border_style="blue",
        ))

    result = _map_file(
        ctx,
        overrides_args=(sheet, start_row, start_col, header_row),
        guided_args=(col_map, profile, category, category_column),
        number_locale=number_locale,
        strict=strict,
        echo=echo,
    )

    try:
        echo("[blue]>[/blue] Writing artifacts …")
        report = _write_outputs(ctx, result, echo)
        if not quiet:
            _print_summary(result, title="Commit Summary")

        if campaigns is not None:
            campaign = JsonCampaignStore(campaigns).get(campaign_id)
            echo(f"  Campaign: {campaign.name or campaign.id} ({campaign.currency})")

        echo("[blue]>[/blue] Committing line items …")
        count = result.batch.commit(JsonLinesLineItemStore(store), campaign_id)
    except (CommitRefusedError, StoreError) as exc:
        raise ctx.fail(str(exc), code=EXIT_COMMIT, report=result.report()) from exc
    except IngestError as exc:
        raise ctx.fail(str(exc), code=EXIT_INPUT, report=result.report()) from exc
    except Exception as exc:
        raise ctx.fail(
            f"Unexpected internal error: {exc}", code=EXIT_INTERNAL, report=result.report()
        ) from exc

    manifest_path = _write_manifest(
        out_dir, input_file, ctx.command, ctx.created_at, report, committed=count,
    )
    echo(f"  Manifest      -> {manifest_path}")
    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {count} line item(s) -> campaign {campaign_id}",
            title="Commit Complete", border_style="green",
        ))
