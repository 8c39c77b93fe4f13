"""Field mapping — header labels to canonical line-item fields.

Two modes produce the same :class:`MappingSpec`:

* :func:`auto_map` searches the header set with per-field synonym lists.
  ``vendor`` and ``cost_net`` try a short list of strong names first, then
  the generic synonyms, then a substring match.
* :func:`guided_map` takes explicit ``field -> header`` assignments and a
  category policy from the caller; no search happens.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from vendor_ingest import CANONICAL_FIELDS, CATEGORIES
from vendor_ingest.classify import VendorType, default_category
from vendor_ingest.headers import normalize_label
from vendor_ingest.models import CategoryPolicy, MappingSpec
from vendor_ingest.normalize import normalize_category

logger = logging.getLogger(__name__)

STRONG_CANDIDATES: dict[str, tuple[str, ...]] = {
    "vendor": (
        "vendor", "vendor name", "newspaper", "publication", "publisher",
        "station", "network", "partner",
    ),
    "cost_net": (
        "net cost", "cost net", "total net cost", "net total", "total net",
        "net amount", "net spend", "total cost", "cost",
    ),
}

FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "vendor": (
        "supplier", "media vendor", "outlet", "property", "site", "platform",
        "media company", "company", "station name", "network name",
        "publication name",
    ),
    "cat": ("category", "cat", "channel", "media type", "medium", "media"),
    "cost_net": (
        "net", "total", "amount", "spend", "investment", "budget", "media cost",
        "gross cost", "total spend", "extended cost",
    ),
    "description": (
        "description", "placement", "placement name", "line description",
        "ad size", "size", "program", "programme", "ad set name", "ad set",
        "creative", "format", "details",
    ),
    "unit": ("unit", "unit type", "buy type", "rate type", "cost type", "pricing model", "uom"),
    "quantity": (
        "quantity", "qty", "impressions", "imps", "insertions", "ins", "spots",
        "grps", "units", "faces", "circulation",
    ),
    "geography": ("geography", "geo", "location", "region", "area", "coverage"),
    "audience_descriptor": (
        "audience descriptor", "audience", "target audience", "targeting",
        "demo", "demographic", "demographics",
    ),
    "currency": ("currency", "curr", "ccy", "currency code"),
    "fx_rate_to_campaign": (
        "fx rate to campaign", "fx rate", "fx", "exchange rate", "conversion rate",
    ),
}

CONTAINS_TOKENS: dict[str, tuple[str, ...]] = {
    "vendor": ("vendor", "publisher", "publication", "station"),
    "cost_net": ("net cost", "total cost", "cost", "total", "spend", "amount"),
}

# Words that disqualify a substring hit (rates, ids and counts are not totals/names).
CONTAINS_EXCLUDED_WORDS: dict[str, frozenset[str]] = {
    "vendor": frozenset({"id", "code", "number", "no", "contact", "email", "phone", "type"}),
    "cost_net": frozenset(
        {
            "per", "rate", "cpm", "cpp", "cpc", "unit", "impressions", "imps",
            "spots", "grps", "insertions", "units", "faces", "clicks", "currency",
        }
    ),
}

AUX_ROLES: dict[str, tuple[str, ...]] = {
    "market": ("market", "market name", "dma", "dma name", "city"),
    "state": ("state", "st", "province", "state/province", "state province", "prov"),
    "cpm": ("cpm", "net cpm", "cpm net", "cpm rate", "ecpm"),
    "impressions": (
        "impressions", "imps", "impr", "est impressions", "estimated impressions",
        "booked impressions", "total impressions", "weekly impressions",
    ),
    "unit_rate": (
        "net per unit", "net rate per unit", "net unit rate", "net rate",
        "net unit cost", "net per insertion", "rate per unit", "cost per unit",
        "unit rate",
    ),
    "insertions": ("insertions", "ins", "editions", "quantity", "qty", "units", "faces"),
    "cpp": ("cpp", "net cpp", "cost per point"),
    "grps": ("grps", "grp", "trps", "points", "total grps"),
    "rate": (
        "rate", "gross rate", "open rate", "spot rate", "rate per spot",
        "cost per spot", "unit cost", "price",
    ),
    "quantity": (
        "quantity", "qty", "spots", "number of spots", "total spots", "units",
        "faces", "insertions", "ins",
    ),
}

EMITTED_FIELDS = [f for f in CANONICAL_FIELDS if f != "cat"]


# ── Automatic ────────────────────────────────────────────────────


def _match_exact(headers: list[str], candidates: Iterable[str]) -> str | None:
    present = set(headers)
    for candidate in candidates:
        if candidate in present:
            return candidate
    return None


def _match_contains(headers: list[str], tokens: Iterable[str], excluded: frozenset[str]) -> str | None:
    for token in tokens:
        for header in headers:
            if header.startswith("col_"):
                continue
            if token in header and not (set(header.split()) & excluded):
                return header
    return None


def find_field_header(headers: list[str], field_name: str) -> str | None:
    """Return the best header for *field_name* or None."""
    strong = STRONG_CANDIDATES.get(field_name)
    if strong:
        match = _match_exact(headers, strong)
        if match:
            return match
    match = _match_exact(headers, FIELD_SYNONYMS.get(field_name, ()))
    if match:
        return match
    tokens = CONTAINS_TOKENS.get(field_name)
    if tokens:
        return _match_contains(headers, tokens, CONTAINS_EXCLUDED_WORDS.get(field_name, frozenset()))
    return None


def find_aux_headers(headers: list[str]) -> dict[str, str]:
    aux: dict[str, str] = {}
    for role, candidates in AUX_ROLES.items():
        match = _match_exact(headers, candidates)
        if match:
            aux[role] = match
    return aux


def auto_map(headers: list[str], vendor_type: VendorType) -> MappingSpec:
    """Build a mapping by heuristic search over *headers*."""
    fields: dict[str, str] = {}
    for name in EMITTED_FIELDS:
        match = find_field_header(headers, name)
        if match:
            fields[name] = match

    fallback = default_category(vendor_type)
    cat_header = find_field_header(headers, "cat")
    if cat_header:
        category = CategoryPolicy.from_header(cat_header, fallback=fallback)
    else:
        category = CategoryPolicy.fixed(fallback)

    spec = MappingSpec(fields=fields, category=category, aux=find_aux_headers(headers))
    logger.info(
        "Auto mapping: %s; category=%s",
        ", ".join(f"{k}<-{v}" for k, v in fields.items()) or "no fields",
        cat_header or fallback,
    )
    return spec


# ── Guided ───────────────────────────────────────────────────────


def _resolve_header(headers: list[str], name: str) -> str:
    if name in headers:
        return name
    normalized = normalize_label(name)
    if normalized in headers:
        return normalized
    raise ValueError(f"Unknown header {name!r}. Detected headers: {', '.join(headers)}")


def guided_map(
    headers: list[str],
    assignments: Mapping[str, str],
    *,
    category: str | None = None,
    category_header: str | None = None,
) -> MappingSpec:
    """Build a mapping from explicit ``field -> header`` assignments.

    ``assignments`` may name canonical fields and the auxiliary roles used
    for geography and cost derivation (see :data:`AUX_ROLES`). A ``cat``
    assignment is treated like *category_header*. Exactly one of a category
    constant or a category header must end up set; a constant must resolve
    to one of :data:`~vendor_ingest.CATEGORIES`.
    """
    fields: dict[str, str] = {}
    aux: dict[str, str] = {}
    for name, header in assignments.items():
        resolved = _resolve_header(headers, header)
        if name == "cat":
            if category_header is not None:
                raise ValueError("Choose either a cat assignment or a category header, not both")
            category_header = resolved
        elif name in EMITTED_FIELDS:
            fields[name] = resolved
        elif name in AUX_ROLES:
            aux[name] = resolved
        else:
            valid = ", ".join([*CANONICAL_FIELDS, *AUX_ROLES])
            raise ValueError(f"Unknown mapping field {name!r}. Use one of: {valid}")

    if category and category_header:
        raise ValueError("Choose either a category constant or a category header, not both")
    if category_header:
        policy = CategoryPolicy.from_header(_resolve_header(headers, category_header))
    elif category and category.strip():
        constant = normalize_category(category)
        if constant not in CATEGORIES:
            raise ValueError(f"Unknown category {category!r}. Use one of: {', '.join(CATEGORIES)}")
        policy = CategoryPolicy.fixed(constant)
    else:
        raise ValueError("Guided mapping needs a category: a constant or a header")

    return MappingSpec(fields=fields, category=policy, aux=aux, guided=True)


# ── Mapping profiles ─────────────────────────────────────────────


def _normalize_field_name(name: str) -> str:
    return "_".join(name.strip().lower().split())


def parse_mapping_pairs(raw: Iterable[str] | None) -> dict[str, str]:
    """Parse ``field=Header`` pairs into ``{field: header}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected field=Header)")
        field_name, header = item.split("=", 1)
        field_norm = _normalize_field_name(field_name)
        header = header.strip()
        if not field_norm or not header:
            raise ValueError("--map entries must have non-empty field and header (field=Header)")
        if field_norm in mapping:
            logger.warning("Overriding mapping for field %r", field_norm)
        mapping[field_norm] = header
    return mapping


def load_profile_lines(profile: Path | None) -> list[str]:
    """Return ``field=Header`` lines from a profile file (``#`` comments allowed)."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like vendor=Publication)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines
