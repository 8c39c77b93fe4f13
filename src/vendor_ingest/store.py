"""Store collaborators — where committed line items go, where campaigns come from."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from vendor_ingest.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Campaign:
    id: str
    name: str
    currency: str = "USD"
    geography: str | None = None


class LineItemStore(Protocol):
    def create_many(self, records: Sequence[dict[str, Any]]) -> int:
        """Insert every record or none; return the inserted count."""
        ...


class CampaignStore(Protocol):
    def get(self, campaign_id: str) -> Campaign: ...


class InMemoryLineItemStore:
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []

    def create_many(self, records: Sequence[dict[str, Any]]) -> int:
        self.rows.extend(dict(r) for r in records)
        return len(records)


class JsonLinesLineItemStore:
    """Append-only JSON Lines file; each batch lands whole or not at all."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def create_many(self, records: Sequence[dict[str, Any]]) -> int:
        try:
            lines = [json.dumps(r, sort_keys=True, ensure_ascii=False) for r in records]
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Line item is not serializable: {exc}") from exc

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            existing = self.path.read_text(encoding="utf-8") if self.path.exists() else ""
            if existing and not existing.endswith("\n"):
                existing += "\n"
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(existing + "".join(f"{line}\n" for line in lines), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StoreError(f"Could not write line items to {self.path}: {exc}") from exc
        logger.info("Appended %d line item(s) to %s", len(lines), self.path)
        return len(lines)

    def read_all(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8")
        return [json.loads(line) for line in text.splitlines() if line.strip()]


class JsonCampaignStore:
    """Campaigns from a JSON file: a list of objects or an ``{id: object}`` map."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> list[dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read campaigns from {self.path}: {exc}") from exc
        if isinstance(data, dict):
            return [{"id": key, **value} for key, value in data.items() if isinstance(value, dict)]
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)]
        raise StoreError(f"Campaign file {self.path} must hold a list or an object")

    def get(self, campaign_id: str) -> Campaign:
        for item in self._load():
            if str(item.get("id")) == str(campaign_id):
                return Campaign(
                    id=str(item["id"]),
                    name=str(item.get("name") or ""),
                    currency=str(item.get("currency") or "USD"),
                    geography=item.get("geography") or None,
                )
        raise StoreError(f"Campaign not found: {campaign_id}")
