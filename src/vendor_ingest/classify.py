"""Vendor-type classification from a header set."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

logger = logging.getLogger(__name__)


class VendorType(str, Enum):
    PRINT_NEWS = "PRINT_NEWS"
    DIGITAL = "DIGITAL"
    BROADCAST = "BROADCAST"
    OOH_DOOH = "OOH_DOOH"
    UNKNOWN = "UNKNOWN"


# Checked in this order; the first signature sharing a header wins.
VENDOR_SIGNATURES: tuple[tuple[VendorType, frozenset[str]], ...] = (
    (
        VendorType.PRINT_NEWS,
        frozenset(
            {
                "newspaper", "publication", "inch rate", "column inch rate",
                "col inch rate", "insertions", "ins", "editions", "edition",
                "open national", "open national rate", "net per unit",
                "net rate per unit", "circulation",
            }
        ),
    ),
    (
        VendorType.DIGITAL,
        frozenset(
            {
                "impressions", "imps", "impr", "clicks", "ctr", "cpm", "cpc",
                "ad set", "ad set name", "adset", "ad group", "placement id",
            }
        ),
    ),
    (
        VendorType.BROADCAST,
        frozenset(
            {
                "spots", "grps", "grp", "trps", "cpp", "rating", "ratings",
                "program", "programme", "daypart",
            }
        ),
    ),
    (
        VendorType.OOH_DOOH,
        frozenset(
            {
                "faces", "units", "board id", "panel id", "weekly impressions",
                "unit id", "face id", "board", "panel",
            }
        ),
    ),
)

DEFAULT_CATEGORY: dict[VendorType, str] = {
    VendorType.PRINT_NEWS: "PRINT",
    VendorType.DIGITAL: "DIGITAL",
    VendorType.BROADCAST: "BROADCAST",
    VendorType.OOH_DOOH: "OOH_DOOH",
    VendorType.UNKNOWN: "FEES",
}


def classify_headers(headers: Iterable[str]) -> VendorType:
    """Guess the advertising medium from normalized header labels."""
    present = set(headers)
    for vendor_type, signature in VENDOR_SIGNATURES:
        matched = present & signature
        if matched:
            logger.info("Vendor type %s (matched: %s)", vendor_type.value, ", ".join(sorted(matched)))
            return vendor_type
    logger.info("Vendor type UNKNOWN")
    return VendorType.UNKNOWN


def default_category(vendor_type: VendorType) -> str:
    return DEFAULT_CATEGORY[vendor_type]
