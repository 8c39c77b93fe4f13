"""Mapped record emitter — the reviewable batch and its commit gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import pandas as pd

from vendor_ingest import CANONICAL_FIELDS
from vendor_ingest.errors import CommitRefusedError, StoreError
from vendor_ingest.models import Issue, MappedRecord
from vendor_ingest.store import LineItemStore

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ["source_row", *CANONICAL_FIELDS]


@dataclass(frozen=True)
class MappedBatch:
    """Records that survived validation plus every issue found on the way."""

    records: tuple[MappedRecord, ...] = ()
    issues: tuple[Issue, ...] = ()
    warnings: tuple[str, ...] = ()
    guided: bool = False

    @property
    def can_commit(self) -> bool:
        return bool(self.records) and not self.issues

    @property
    def total_cost(self) -> float:
        return round(sum(r.cost_net for r in self.records), 2)

    def payloads(self, campaign_id: str) -> list[dict[str, Any]]:
        return [r.to_store_payload(campaign_id) for r in self.records]

    def commit(self, store: LineItemStore, campaign_id: str) -> int:
        """Forward the batch to *store* in one write and return the count.

        Refused, without touching the store, while issues remain or when
        there is nothing to insert.
        """
        if self.issues:
            logger.warning("Commit refused: %d unresolved issue(s)", len(self.issues))
            raise CommitRefusedError(
                f"Commit refused: {len(self.issues)} issue(s) must be resolved first"
            )
        if not self.records:
            raise CommitRefusedError("Commit refused: no line items to insert")
        if not str(campaign_id).strip():
            raise CommitRefusedError("Commit refused: campaign id is required")

        try:
            count = store.create_many(self.payloads(campaign_id))
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(str(exc)) from exc
        logger.info("Committed %d line item(s) to campaign %s", count, campaign_id)
        return count

    def records_frame(self) -> pd.DataFrame:
        rows = [{"source_row": r.source_row, **r.to_dict()} for r in self.records]
        return pd.DataFrame(rows, columns=RECORD_COLUMNS)

    def issues_frame(self) -> pd.DataFrame:
        return pd.DataFrame([i.to_dict() for i in self.issues], columns=["row", "message"])
