from __future__ import annotations

import pytest

from vendor_ingest.classify import VendorType, classify_headers, default_category


@pytest.mark.parametrize(
    ("headers", "expected"),
    [
        (["newspaper", "market", "state", "ins", "net per unit"], VendorType.PRINT_NEWS),
        (["vendor", "impressions", "cpm"], VendorType.DIGITAL),
        (["station", "spots", "grps", "cpp"], VendorType.BROADCAST),
        (["vendor", "board id", "faces", "market"], VendorType.OOH_DOOH),
        (["vendor", "cost"], VendorType.UNKNOWN),
    ],
)
def test_classify_headers(headers: list[str], expected: VendorType) -> None:
    assert classify_headers(headers) is expected


def test_signatures_are_checked_in_order() -> None:
    # a print sheet that also reports impressions is still print
    assert classify_headers(["publication", "impressions", "cost"]) is VendorType.PRINT_NEWS
    # digital beats broadcast when both kinds of column appear
    assert classify_headers(["cpm", "spots"]) is VendorType.DIGITAL


def test_default_category_per_vendor_type() -> None:
    assert default_category(VendorType.PRINT_NEWS) == "PRINT"
    assert default_category(VendorType.DIGITAL) == "DIGITAL"
    assert default_category(VendorType.BROADCAST) == "BROADCAST"
    assert default_category(VendorType.OOH_DOOH) == "OOH_DOOH"
    assert default_category(VendorType.UNKNOWN) == "FEES"
