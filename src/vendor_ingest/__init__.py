"""vendor-sheet-ingest — Turn vendor media spreadsheets into canonical line items."""

import logging

__version__ = "0.2.0"

CANONICAL_FIELDS: list[str] = [
    "vendor",
    "cat",
    "cost_net",
    "description",
    "unit",
    "quantity",
    "geography",
    "audience_descriptor",
    "currency",
    "fx_rate_to_campaign",
]

REQUIRED_FIELDS: list[str] = ["vendor", "cat", "cost_net"]

CATEGORIES: list[str] = ["DIGITAL", "BROADCAST", "PRINT", "OOH_DOOH", "CREATIVE", "FEES"]

logging.getLogger(__name__).addHandler(logging.NullHandler())
