from __future__ import annotations

import math

import pytest

from vendor_ingest.models import CategoryPolicy, MappingSpec, RawRow
from vendor_ingest.normalize import (
    ParseStats,
    compose_geography,
    derive_cost,
    normalize_category,
    normalize_row,
    parse_loose_number,
)


def _spec(fields: dict[str, str] | None = None, aux: dict[str, str] | None = None, cat: str = "PRINT") -> MappingSpec:
    return MappingSpec(fields=fields or {}, category=CategoryPolicy.fixed(cat), aux=aux or {})


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("$(1,234.56)", -1234.56),
        ("1,000", 1000.0),
        ("1.234,56", 1234.56),
        ("12,5", 12.5),
        ("EUR 1.500,00", 1500.0),
        ("1 250 000", 1250000.0),
        ("-45.5", -45.5),
        ("+7", 7.0),
        ("15%", 15.0),
        (42, 42.0),
    ],
)
def test_parse_loose_number(text: object, expected: float) -> None:
    assert parse_loose_number(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["", "  ", "n/a", "TBD", "nan", "inf", "-", None, True])
def test_parse_loose_number_returns_nan_for_non_numbers(text: object) -> None:
    assert math.isnan(parse_loose_number(text))


def test_parse_loose_number_locales() -> None:
    assert parse_loose_number("1,234", locale="us") == 1234.0
    assert parse_loose_number("1.234", locale="eu") == 1234.0
    assert parse_loose_number("12,5", locale="eu") == 12.5
    assert parse_loose_number("1.234,56", locale="us") != 1234.56


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("(500)", -500.0),
        ("-(5)", -5.0),
        ("1'000", 1000.0),
        ("USD 1,250", 1250.0),
        ("1,250 EUR", 1250.0),
        ("£ 99.5", 99.5),
        ("1\u00a0000", 1000.0),
    ],
)
def test_parse_loose_number_strips_decorations(text: str, expected: float) -> None:
    assert parse_loose_number(text) == pytest.approx(expected)


def test_parse_loose_number_locale_edge_cases() -> None:
    assert math.isnan(parse_loose_number("12,5", locale="us"))
    assert parse_loose_number("1.234", locale="us") == pytest.approx(1.234)
    assert parse_loose_number("1,234.5", locale="eu") == pytest.approx(1.2345)
    assert math.isnan(parse_loose_number("—"))


@pytest.mark.parametrize(
    ("text", "locale", "expected"),
    [
        ("0.125", "auto", 0.125),
        ("1.085", "auto", 1.085),
        ("-3.333", "auto", -3.333),
        ("1.234.567", "auto", 1234567.0),
        ("1.085", "eu", 1085.0),
        ("0.125", "eu", 0.125),
        ("1.234.567", "us", math.nan),
    ],
)
def test_parse_loose_number_single_dot_is_decimal_in_auto(text: str, locale: str, expected: float) -> None:
    stats = ParseStats()

    value = parse_loose_number(text, locale=locale, stats=stats)  # type: ignore[arg-type]

    if math.isnan(expected):
        assert math.isnan(value)
    else:
        assert value == pytest.approx(expected)
    assert stats.ambiguous == 0


def test_parse_stats_count_separator_guesses() -> None:
    stats = ParseStats()

    parse_loose_number("1,000", stats=stats)
    parse_loose_number("9,99", stats=stats)
    parse_loose_number("12.00", stats=stats)

    assert stats.ambiguous == 1
    assert stats.eu_decimal == 1


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("tv", "BROADCAST"),
        (" Radio ", "BROADCAST"),
        ("Out-of-Home", "OOH_DOOH"),
        ("dooh", "OOH_DOOH"),
        ("Social", "DIGITAL"),
        ("magazine", "PRINT"),
        ("fees", "FEES"),
        ("Sponsorship", "SPONSORSHIP"),
        ("   ", None),
    ],
)
def test_normalize_category(raw: str, expected: str | None) -> None:
    assert normalize_category(raw) == expected


def test_derive_cost_follows_formula_order() -> None:
    spec = _spec(aux={"cpm": "cpm", "impressions": "imps", "rate": "rate", "quantity": "qty"})
    row = RawRow(4, {"cpm": "12.00", "imps": "50,000", "rate": "100", "qty": "3"})

    assert derive_cost(row, spec) == (600.0, "cpm")

    no_cpm = RawRow(5, {"cpm": "", "imps": "50,000", "rate": "100", "qty": "3"})
    assert derive_cost(no_cpm, spec) == (300.0, "rate")


def test_derive_cost_cpp_grps_and_rounding() -> None:
    broadcast = _spec(aux={"cpp": "cpp", "grps": "grps"})
    assert derive_cost(RawRow(2, {"cpp": "250", "grps": "40.5"}), broadcast) == (10125.0, "cpp")

    digital = _spec(aux={"cpm": "cpm", "impressions": "imps"})
    assert derive_cost(RawRow(2, {"cpm": "3.333", "imps": "1000"}), digital) == (3.33, "cpm")


def test_derive_cost_without_operands_is_nan() -> None:
    cost, formula = derive_cost(RawRow(2, {}), _spec())

    assert math.isnan(cost)
    assert formula is None


def test_compose_geography() -> None:
    spec = _spec(fields={"geography": "region"}, aux={"market": "market", "state": "state"})

    assert compose_geography(RawRow(2, {"market": "Springfield", "state": "IL"}), spec) == "Springfield, IL"
    assert compose_geography(RawRow(2, {"market": "", "state": "IL"}), spec) == "IL"
    assert compose_geography(RawRow(2, {"region": " Midwest "}), spec) == "Midwest"
    assert compose_geography(RawRow(2, {}), spec) is None


def test_normalize_row_direct_cost_wins_unless_zero_or_blank() -> None:
    spec = _spec(
        fields={"vendor": "vendor", "cost_net": "cost"},
        aux={"unit_rate": "rate", "insertions": "ins"},
    )

    direct = normalize_row(RawRow(3, {"vendor": "Acme", "cost": "500", "rate": "10", "ins": "2"}), spec)
    zero = normalize_row(RawRow(4, {"vendor": "Acme", "cost": "0", "rate": "10", "ins": "2"}), spec)
    blank = normalize_row(RawRow(5, {"vendor": "Acme", "cost": "", "rate": "", "ins": ""}), spec)

    assert (direct.cost_net, direct.cost_source) == (500.0, "direct")
    assert (zero.cost_net, zero.cost_source) == (20.0, "unit_rate")
    assert math.isnan(blank.cost_net)
    assert blank.cost_source is None


def test_normalize_row_field_rules() -> None:
    fields = {
        "vendor": "vendor",
        "cost_net": "cost",
        "description": "placement",
        "quantity": "qty",
        "audience_descriptor": "audience",
        "currency": "currency",
        "fx_rate_to_campaign": "fx",
    }
    row = RawRow(
        9,
        {
            "vendor": "  Acme   Media ",
            "cost": "1,000",
            "placement": "",
            "qty": "lots",
            "audience": "Adults 25-54",
            "currency": "cad",
            "fx": "0.74",
        },
    )

    digital = normalize_row(row, _spec(fields=fields, cat="DIGITAL"))
    printed = normalize_row(row, _spec(fields=fields, cat="PRINT"))

    assert digital.vendor == "Acme Media"
    assert digital.description is None
    assert digital.quantity is None
    assert digital.audience_descriptor == "Adults 25-54"
    assert digital.currency == "CAD"
    assert digital.fx_rate_to_campaign == 0.74
    assert printed.audience_descriptor is None


def test_normalize_row_category_from_header_with_fallback() -> None:
    spec = MappingSpec(
        fields={"vendor": "vendor"},
        category=CategoryPolicy.from_header("channel", fallback="FEES"),
    )

    assert normalize_row(RawRow(2, {"vendor": "A", "channel": "tv"}), spec).cat == "BROADCAST"
    assert normalize_row(RawRow(3, {"vendor": "A", "channel": ""}), spec).cat == "FEES"


def test_normalize_row_keeps_unparseable_fx_for_validation() -> None:
    spec = _spec(fields={"fx_rate_to_campaign": "fx"})

    assert normalize_row(RawRow(2, {"fx": ""}), spec).fx_rate_to_campaign is None
    assert math.isnan(normalize_row(RawRow(2, {"fx": "abc"}), spec).fx_rate_to_campaign)
