from __future__ import annotations

import json
from pathlib import Path

import pytest

from vendor_ingest.errors import StoreError
from vendor_ingest.store import Campaign, InMemoryLineItemStore, JsonCampaignStore, JsonLinesLineItemStore


def test_in_memory_store_copies_records() -> None:
    store = InMemoryLineItemStore()
    record = {"vendor": "Acme"}

    assert store.create_many([record]) == 1
    record["vendor"] = "changed"
    assert store.rows == [{"vendor": "Acme"}]


def test_json_lines_store_appends_batches(tmp_path: Path) -> None:
    store = JsonLinesLineItemStore(tmp_path / "nested" / "line_items.jsonl")

    assert store.create_many([{"vendor": "Acme", "cost_net": 1.0}]) == 1
    assert store.create_many([{"vendor": "Globex", "cost_net": 2.0}, {"vendor": "Initech", "cost_net": 3.0}]) == 2

    assert [r["vendor"] for r in store.read_all()] == ["Acme", "Globex", "Initech"]
    assert not (tmp_path / "nested" / "line_items.jsonl.tmp").exists()


def test_json_lines_store_rejects_unserializable_without_writing(tmp_path: Path) -> None:
    store = JsonLinesLineItemStore(tmp_path / "line_items.jsonl")

    with pytest.raises(StoreError, match="not serializable"):
        store.create_many([{"vendor": "Acme"}, {"vendor": object()}])
    assert store.read_all() == []


def test_json_lines_store_io_failure_is_store_error(tmp_path: Path) -> None:
    store = JsonLinesLineItemStore(tmp_path)

    with pytest.raises(StoreError, match="Could not write"):
        store.create_many([{"vendor": "Acme"}])


def test_campaign_store_reads_list_and_mapping(tmp_path: Path) -> None:
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([{"id": "cmp-1", "name": "Spring", "currency": "CAD"}]))
    as_map = tmp_path / "map.json"
    as_map.write_text(json.dumps({"cmp-2": {"name": "Fall", "geography": "IL"}}))

    assert JsonCampaignStore(as_list).get("cmp-1") == Campaign("cmp-1", "Spring", "CAD", None)
    assert JsonCampaignStore(as_map).get("cmp-2") == Campaign("cmp-2", "Fall", "USD", "IL")


def test_campaign_store_errors(tmp_path: Path) -> None:
    path = tmp_path / "campaigns.json"
    path.write_text(json.dumps([{"id": "cmp-1", "name": "Spring"}]))

    with pytest.raises(StoreError, match="Campaign not found: cmp-9"):
        JsonCampaignStore(path).get("cmp-9")
    with pytest.raises(StoreError, match="Could not read"):
        JsonCampaignStore(tmp_path / "missing.json").get("cmp-1")

    path.write_text('"just a string"')
    with pytest.raises(StoreError, match="list or an object"):
        JsonCampaignStore(path).get("cmp-1")
