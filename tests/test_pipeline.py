"""End-to-end tests for the pure pipeline stages and the ingest session."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import pytest
from openpyxl import Workbook

from vendor_ingest.classify import VendorType
from vendor_ingest.errors import FileFormatError, MappingAbortError
from vendor_ingest.io import load_workbook
from vendor_ingest.models import Overrides
from vendor_ingest.pipeline import (
    GuidedMapping,
    IngestSession,
    build_mapping,
    map_rows,
    prepare_sheet,
    run,
    select_sheet,
)
from vendor_ingest.store import InMemoryLineItemStore

GUIDED_PRINT = GuidedMapping(
    assignments={"vendor": "Newspaper", "unit_rate": "Net Per Unit", "insertions": "Ins"},
    category="print",
)


def test_print_sheet_end_to_end(print_csv: Path) -> None:
    result = run(print_csv.read_bytes(), print_csv.name)

    assert result.detection.header_row_number == 3
    assert result.vendor_type is VendorType.PRINT_NEWS
    assert result.batch.issues == ()
    first, second = result.batch.records
    assert (first.vendor, first.cat, first.cost_net) == ("Springfield Gazette", "PRINT", 450.0)
    assert first.geography == "Springfield, IL"
    assert first.quantity == 3.0
    assert first.source_row == 4
    assert (second.cost_net, second.source_row) == (2400.0, 5)
    assert result.batch.total_cost == 2850.0


def test_digital_sheet_derives_cost_from_cpm(digital_csv: Path) -> None:
    result = run(digital_csv.read_bytes(), digital_csv.name)

    assert result.vendor_type is VendorType.DIGITAL
    first = result.batch.records[0]
    assert first.cat == "DIGITAL"
    assert first.cost_net == 3125.0
    assert first.description == "Homepage Takeover"
    assert first.audience_descriptor == "Adults 25-54"
    assert first.currency == "USD"
    assert result.batch.records[1].cost_net == 400.0
    assert any("ambiguous" in w for w in result.batch.warnings)


def test_issues_do_not_stop_other_rows() -> None:
    data = (
        b"Vendor,Cost,Category\n"
        b"Acme,100,Digital\n"
        b",200,Digital\n"
        b"Globex,n/a,tv\n"
        b"Initech,300,\n"
    )

    result = run(data, "mixed.csv")

    assert [r.vendor for r in result.batch.records] == ["Acme", "Initech"]
    assert [r.cat for r in result.batch.records] == ["DIGITAL", "FEES"]
    assert [i.message for i in result.batch.issues] == [
        "Row 3: vendor missing",
        "Row 4: cost not found",
    ]
    assert not result.batch.can_commit


def test_strict_run_aborts_on_first_bad_row() -> None:
    with pytest.raises(MappingAbortError) as exc_info:
        run(b"Vendor,Cost\nAcme,1\n,2\n", "order.csv", strict=True)

    assert exc_info.value.row == 3


def test_guided_mapping_replaces_auto_mapping(print_csv: Path) -> None:
    result = run(print_csv.read_bytes(), print_csv.name, guided=GUIDED_PRINT)

    assert result.mapping.guided is True
    assert result.batch.guided is True
    assert result.mapping.category.constant == "PRINT"
    assert [r.cost_net for r in result.batch.records] == [450.0, 2400.0]
    assert result.batch.records[0].geography is None


def test_overrides_crop_and_force_header(print_csv: Path) -> None:
    workbook = load_workbook(print_csv.read_bytes(), print_csv.name)

    detection = prepare_sheet(workbook, Overrides(start_row=3, start_col="B"))
    assert detection.headers == ["market", "state", "ins", "net per unit"]
    assert detection.header_row_number == 3
    assert [r.row_number for r in detection.rows] == [4, 5]

    forced = prepare_sheet(workbook, Overrides(manual_header_row=1))
    assert forced.score is None
    assert forced.header_row_number == 1

    with pytest.raises(FileFormatError, match="No rows"):
        prepare_sheet(workbook, Overrides(start_row=50))


def test_build_and_map_stages_compose(print_csv: Path) -> None:
    workbook = load_workbook(print_csv.read_bytes(), print_csv.name)
    detection = prepare_sheet(workbook, Overrides())

    mapping = build_mapping(detection)
    batch = map_rows(detection, mapping)

    assert mapping.fields["vendor"] == "newspaper"
    assert len(batch.records) == 2


def test_select_sheet_by_name() -> None:
    wb = Workbook()
    wb.active.title = "Cover"
    wb.active.append(["Insertion order 42"])
    data = wb.create_sheet("Data")
    data.append(["Vendor", "Cost"])
    data.append(["Acme", 10])
    buf = BytesIO()
    wb.save(buf)
    workbook = load_workbook(buf.getvalue(), "order.xlsx")

    assert select_sheet(workbook)[0] == "Cover"
    result = run(buf.getvalue(), "order.xlsx", Overrides(selected_sheet="Data"))
    assert result.detection.sheet_name == "Data"
    assert result.batch.records[0].cost_net == 10.0
    with pytest.raises(FileFormatError, match="not found"):
        select_sheet(workbook, "Missing")


def test_start_col_past_right_edge_is_rejected() -> None:
    with pytest.raises(FileFormatError, match="No columns"):
        run(b"Vendor,Cost\nAcme,100\n", "order.csv", Overrides(start_col="Z"))


def test_xlsx_three_decimal_fx_rate_stays_decimal() -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(["Vendor", "Cost", "FX Rate"])
    ws.append(["Acme", 100, 1.085])
    ws["C2"].number_format = "0.000"
    buf = BytesIO()
    wb.save(buf)

    result = run(buf.getvalue(), "order.xlsx")

    record = result.batch.records[0]
    assert record.fx_rate_to_campaign == pytest.approx(1.085)
    assert record.cost_net == 100.0
    assert not any("ambiguous" in w for w in result.batch.warnings)


def test_preview_and_report(print_csv: Path) -> None:
    result = run(print_csv.read_bytes(), print_csv.name)

    preview = result.preview(1)
    report = result.report()

    assert preview.headers == ["newspaper", "market", "state", "ins", "net per unit"]
    assert preview.rows == [
        {
            "newspaper": "Springfield Gazette",
            "market": "Springfield",
            "state": "IL",
            "ins": "3",
            "net per unit": "150.00",
        }
    ]
    assert len(preview.records) == 2
    assert report.rows_in == 2
    assert report.rows_out == 2
    assert report.dropped_rows == 0
    assert report.header_row == 3
    assert report.vendor_type == "PRINT_NEWS"
    assert report.mapping["category"]["constant"] == "PRINT"


def test_session_keeps_guided_mapping_while_headers_match(print_csv: Path) -> None:
    session = IngestSession()
    session.select_file(print_csv.read_bytes(), print_csv.name)
    session.apply_guided(GUIDED_PRINT)

    same_headers = session.update_overrides(start_row=3)
    assert session.guided is GUIDED_PRINT
    assert same_headers.mapping.guided is True

    moved = session.update_overrides(start_col="B")
    assert session.guided is None
    assert moved.mapping.guided is False


def test_session_header_change_after_failed_override_drops_guided_mapping(print_csv: Path) -> None:
    session = IngestSession()
    session.select_file(print_csv.read_bytes(), print_csv.name)
    session.apply_guided(GUIDED_PRINT)

    with pytest.raises(FileFormatError, match="No rows"):
        session.update_overrides(start_row=99)
    assert session.result is None
    assert session.guided is GUIDED_PRINT

    shifted = session.update_overrides(start_row=4)

    assert session.guided is None
    assert shifted.mapping.guided is False
    assert shifted.detection.headers[0] == "springfield gazette"


def test_session_failed_override_keeps_guided_mapping_for_same_headers(print_csv: Path) -> None:
    session = IngestSession()
    session.select_file(print_csv.read_bytes(), print_csv.name)
    session.apply_guided(GUIDED_PRINT)

    with pytest.raises(FileFormatError):
        session.update_overrides(start_row=99)
    restored = session.update_overrides(start_row=1)

    assert session.guided is GUIDED_PRINT
    assert restored.mapping.guided is True
    assert len(restored.batch.records) == 2


def test_session_bad_guided_mapping_keeps_previous_state(print_csv: Path) -> None:
    session = IngestSession()
    before = session.select_file(print_csv.read_bytes(), print_csv.name)

    with pytest.raises(ValueError, match="Unknown header"):
        session.apply_guided(GuidedMapping(assignments={"vendor": "Publisher"}, category="PRINT"))

    assert session.guided is None
    assert session.result is before


def test_session_new_file_resets_everything(print_csv: Path, digital_csv: Path) -> None:
    session = IngestSession()
    session.select_file(print_csv.read_bytes(), print_csv.name)
    session.apply_guided(GUIDED_PRINT)
    session.update_overrides(start_row=3)

    result = session.select_file(digital_csv.read_bytes(), digital_csv.name)

    assert session.filename == "acme.csv"
    assert session.overrides == Overrides()
    assert session.guided is None
    assert session.sheet_names == ["acme"]
    assert result.vendor_type is VendorType.DIGITAL


def test_session_failed_load_leaves_no_stale_result(print_csv: Path) -> None:
    session = IngestSession()
    session.select_file(print_csv.read_bytes(), print_csv.name)

    with pytest.raises(FileFormatError):
        session.select_file(b"%PDF", "order.pdf")

    assert session.result is None
    assert session.workbook is None
    with pytest.raises(FileFormatError, match="No file selected"):
        session.commit(InMemoryLineItemStore(), "cmp-1")


def test_session_commit(print_csv: Path) -> None:
    session = IngestSession()
    session.select_file(print_csv.read_bytes(), print_csv.name)
    store = InMemoryLineItemStore()

    assert session.commit(store, "cmp-1") == 2
    assert {row["campaign_id"] for row in store.rows} == {"cmp-1"}
