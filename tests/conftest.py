from __future__ import annotations

from pathlib import Path

import pytest

PRINT_SHEET = (
    "Springfield Gazette Insertion Order,,,,\n"
    ",,,,\n"
    "Newspaper,Market,State,Ins,Net Per Unit\n"
    "Springfield Gazette,Springfield,IL,3,150.00\n"
    'Shelbyville Times,Shelbyville,IL,2,"$1,200.00"\n'
)

DIGITAL_SHEET = (
    "Vendor,Placement,Impressions,CPM,Audience,Currency\n"
    'Acme Media,Homepage Takeover,"250,000",12.50,Adults 25-54,usd\n'
    "Acme Media,Run of Site,100000,4.00,Adults 18+,usd\n"
)


@pytest.fixture()
def print_csv(tmp_path: Path) -> Path:
    path = tmp_path / "gazette.csv"
    path.write_text(PRINT_SHEET, encoding="utf-8")
    return path


@pytest.fixture()
def digital_csv(tmp_path: Path) -> Path:
    path = tmp_path / "acme.csv"
    path.write_text(DIGITAL_SHEET, encoding="utf-8")
    return path
