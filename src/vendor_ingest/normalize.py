"""Value normalization — loose numbers, blank-to-null, cost derivation.

Nothing in here raises on bad cell text: unparseable numbers come back as
``nan`` and the validator decides what that means for the row.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from vendor_ingest.models import MappingSpec, RawRow

logger = logging.getLogger(__name__)

NumberLocale = Literal["auto", "us", "eu"]

EU_DECIMAL = "eu_decimal"
AMBIGUOUS = "ambiguous"

_THOUSANDS_COMMA_RE = re.compile(r"^-?\d{1,3}(,\d{3})+$")
_THOUSANDS_DOT_RE = re.compile(r"^-?[1-9]\d{0,2}(\.\d{3})+$")
_PLAIN_NUMBER_RE = re.compile(r"^-?(\d+\.?\d*|\.\d+)$")
_DECORATION_RE = re.compile(r"[$€£¥%'_–—]")
_CURRENCY_CODE_RE = re.compile(r"^[A-Za-z]{3}\s+|\s+[A-Za-z]{3}$")
_NEGATIVE_PARENS_RE = re.compile(r"^-?\s*\((.*)\)$")
_DIGIT_GAP_RE = re.compile(r"(?<=\d)\s+(?=\d)")
_CATEGORY_SEP_RE = re.compile(r"[\s_\-/]+")

CATEGORY_ALIASES: dict[str, str] = {
    "DIGITAL": "DIGITAL",
    "SOCIAL": "DIGITAL",
    "DISPLAY": "DIGITAL",
    "SEARCH": "DIGITAL",
    "VIDEO": "DIGITAL",
    "ONLINE": "DIGITAL",
    "PROGRAMMATIC": "DIGITAL",
    "BROADCAST": "BROADCAST",
    "TV": "BROADCAST",
    "TELEVISION": "BROADCAST",
    "RADIO": "BROADCAST",
    "PRINT": "PRINT",
    "PRINT NEWS": "PRINT",
    "NEWSPAPER": "PRINT",
    "MAGAZINE": "PRINT",
    "OOH": "OOH_DOOH",
    "DOOH": "OOH_DOOH",
    "OOH DOOH": "OOH_DOOH",
    "OUT OF HOME": "OOH_DOOH",
    "BILLBOARD": "OOH_DOOH",
    "CREATIVE": "CREATIVE",
    "PRODUCTION": "CREATIVE",
    "FEES": "FEES",
    "FEE": "FEES",
}

@dataclass
class ParseStats:
    """Counts of separator guesses made while parsing one batch."""

    eu_decimal: int = 0
    ambiguous: int = 0

    def note(self, guess: str | None) -> None:
        if guess == EU_DECIMAL:
            self.eu_decimal += 1
        elif guess == AMBIGUOUS:
            self.ambiguous += 1


# ── Loose numbers ────────────────────────────────────────────────


def _strip_decorations(text: str) -> str:
    """Drop currency marks, percent signs and digit-group spacing; ``(5)`` becomes ``-5``."""
    token = _DECORATION_RE.sub("", text)
    token = _CURRENCY_CODE_RE.sub("", token.strip()).strip()
    token = _NEGATIVE_PARENS_RE.sub(r"-\1", token)
    token = _DIGIT_GAP_RE.sub("", token).strip()
    return token[1:] if token.startswith("+") else token


def _resolve_separators(token: str, locale: NumberLocale) -> tuple[str, str | None]:
    """Rewrite *token* so ``.`` is the only decimal mark; also return the guess made."""
    has_comma, has_dot = "," in token, "." in token

    if has_comma and has_dot:
        comma_is_decimal = token.rfind(",") > token.rfind(".")
        if locale == "eu" or (locale == "auto" and comma_is_decimal):
            return token.replace(".", "").replace(",", "."), EU_DECIMAL
        return token.replace(",", ""), None

    if has_comma:
        single = token.count(",") == 1
        frac = token.rpartition(",")[2]
        if locale == "eu":
            if single and 1 <= len(frac) <= 3:
                return token.replace(",", "."), EU_DECIMAL
            return token, None
        if _THOUSANDS_COMMA_RE.fullmatch(token):
            return token.replace(",", ""), AMBIGUOUS if locale == "auto" and single else None
        if locale == "auto" and single and len(frac) in (1, 2):
            return token.replace(",", "."), EU_DECIMAL
        return token, None

    # A lone dot is a decimal point unless the locale says otherwise.
    if has_dot and _THOUSANDS_DOT_RE.fullmatch(token):
        if locale == "eu" or (locale == "auto" and token.count(".") > 1):
            return token.replace(".", ""), None

    return token, None


def parse_loose_number(
    text: object, *, locale: NumberLocale = "auto", stats: ParseStats | None = None
) -> float:
    """Parse vendor-formatted numeric text; ``nan`` when it is not a number.

    ``"$(1,234.56)"`` -> ``-1234.56``, ``"1,000"`` -> ``1000.0``, ``""`` -> ``nan``.
    """
    if text is None or isinstance(text, bool):
        return math.nan
    if isinstance(text, (int, float)):
        return float(text)
    token, guess = _resolve_separators(_strip_decorations(str(text)), locale)
    if not _PLAIN_NUMBER_RE.fullmatch(token):
        return math.nan
    if stats is not None:
        stats.note(guess)
    return float(token)


# ── Text fields ──────────────────────────────────────────────────


def clean_text(value: object) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def normalize_category(value: object) -> str | None:
    """Upper-case a category and resolve common aliases (``TV`` -> ``BROADCAST``)."""
    text = clean_text(value)
    if text is None:
        return None
    key = _CATEGORY_SEP_RE.sub(" ", text.upper()).strip()
    return CATEGORY_ALIASES.get(key, key.replace(" ", "_"))


# ── Derivations ──────────────────────────────────────────────────

CostFormula = tuple[str, str, str, Callable[[float, float], float]]

COST_FORMULAS: tuple[CostFormula, ...] = (
    ("cpm", "cpm", "impressions", lambda cpm, imps: cpm * imps / 1000),
    ("unit_rate", "unit_rate", "insertions", lambda rate, qty: rate * qty),
    ("cpp", "cpp", "grps", lambda cpp, grps: cpp * grps),
    ("rate", "rate", "quantity", lambda rate, qty: rate * qty),
)
"""Fallback chain, tried in order regardless of vendor type."""


def _aux_number(
    row: RawRow, mapping: MappingSpec, role: str, locale: NumberLocale, stats: ParseStats | None
) -> float:
    header = mapping.aux_for(role)
    if header is None:
        return math.nan
    return parse_loose_number(row.get(header), locale=locale, stats=stats)


def derive_cost(
    row: RawRow,
    mapping: MappingSpec,
    *,
    locale: NumberLocale = "auto",
    stats: ParseStats | None = None,
) -> tuple[float, str | None]:
    """Return ``(cost, formula name)`` from the first formula with two finite operands."""
    for name, left_role, right_role, combine in COST_FORMULAS:
        left = _aux_number(row, mapping, left_role, locale, stats)
        right = _aux_number(row, mapping, right_role, locale, stats)
        if math.isfinite(left) and math.isfinite(right):
            cost = round(combine(left, right), 2)
            logger.debug("Row %d: cost %s derived via %s", row.row_number, cost, name)
            return cost, name
    return math.nan, None


def compose_geography(row: RawRow, mapping: MappingSpec) -> str | None:
    """``"<market>, <state>"`` when both are present, else whichever is."""
    market = clean_text(row.get(mapping.aux_for("market")))
    state = clean_text(row.get(mapping.aux_for("state")))
    if market and state:
        return f"{market}, {state}"
    if market or state:
        return market or state
    return clean_text(row.get(mapping.header_for("geography")))


# ── Per-field extraction ─────────────────────────────────────────


@dataclass(frozen=True)
class NormalizedRow:
    """Near-canonical record: typed values, not yet validated."""

    row_number: int
    vendor: str | None
    cat: str | None
    cost_net: float
    cost_source: str | None
    description: str | None
    unit: str | None
    quantity: float | None
    geography: str | None
    audience_descriptor: str | None
    currency: str | None
    fx_rate_to_campaign: float | None


def _extract_text(row: RawRow, mapping: MappingSpec, field_name: str) -> str | None:
    return clean_text(row.get(mapping.header_for(field_name)))


def _extract_cat(row: RawRow, mapping: MappingSpec) -> str | None:
    policy = mapping.category
    if policy.constant is not None:
        return policy.constant
    return normalize_category(row.get(policy.source_header)) or policy.fallback


def _extract_cost(
    row: RawRow, mapping: MappingSpec, locale: NumberLocale, stats: ParseStats | None
) -> tuple[float, str | None]:
    header = mapping.header_for("cost_net")
    direct = math.nan
    if header is not None:
        direct = parse_loose_number(row.get(header), locale=locale, stats=stats)
    if math.isfinite(direct) and direct != 0:
        return direct, "direct"
    derived, formula = derive_cost(row, mapping, locale=locale, stats=stats)
    if formula is not None:
        return derived, formula
    return direct, ("direct" if math.isfinite(direct) else None)


def _extract_optional_number(
    row: RawRow, mapping: MappingSpec, field_name: str, locale: NumberLocale, stats: ParseStats | None
) -> float | None:
    text = clean_text(row.get(mapping.header_for(field_name)))
    if text is None:
        return None
    value = parse_loose_number(text, locale=locale, stats=stats)
    return value if math.isfinite(value) else None


def _extract_fx_rate(
    row: RawRow, mapping: MappingSpec, locale: NumberLocale, stats: ParseStats | None
) -> float | None:
    text = clean_text(row.get(mapping.header_for("fx_rate_to_campaign")))
    if text is None:
        return None
    # nan survives so the validator can report it
    return parse_loose_number(text, locale=locale, stats=stats)


def _extract_currency(row: RawRow, mapping: MappingSpec) -> str | None:
    text = _extract_text(row, mapping, "currency")
    return text.upper() if text else None


def normalize_row(
    row: RawRow,
    mapping: MappingSpec,
    *,
    locale: NumberLocale = "auto",
    stats: ParseStats | None = None,
) -> NormalizedRow:
    """Apply *mapping* to one raw row."""
    cat = _extract_cat(row, mapping)
    cost, cost_source = _extract_cost(row, mapping, locale, stats)
    audience = _extract_text(row, mapping, "audience_descriptor")
    return NormalizedRow(
        row_number=row.row_number,
        vendor=_extract_text(row, mapping, "vendor"),
        cat=cat,
        cost_net=cost,
        cost_source=cost_source,
        description=_extract_text(row, mapping, "description"),
        unit=_extract_text(row, mapping, "unit"),
        quantity=_extract_optional_number(row, mapping, "quantity", locale, stats),
        geography=compose_geography(row, mapping),
        audience_descriptor=audience if cat == "DIGITAL" else None,
        currency=_extract_currency(row, mapping),
        fx_rate_to_campaign=_extract_fx_rate(row, mapping, locale, stats),
    )
