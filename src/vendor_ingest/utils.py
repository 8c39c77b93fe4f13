"""Run bookkeeping helpers for manifests."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

_CHUNK = 1 << 16


def input_fingerprint(path: Path) -> str:
    """SHA-256 hex digest of the vendor file, or ``""`` if it cannot be read."""
    digest = hashlib.sha256()
    try:
        with Path(path).open("rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK), b""):
                digest.update(chunk)
    except OSError:
        return ""
    return digest.hexdigest()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
