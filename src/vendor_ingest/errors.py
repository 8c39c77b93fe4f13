"""Error taxonomy for the ingest pipeline.

Every failure here is scoped to one parse or commit attempt; none of them
is fatal to the hosting process.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all ingest failures."""


class FileFormatError(IngestError, ValueError):
    """Unsupported extension, corrupt container, or no usable sheet data."""


class ParserUnavailableError(IngestError):
    """A decoder needed for this file type cannot be loaded."""


class MappingAbortError(IngestError):
    """Strict mapping pass stopped at the first row failing a required field."""

    def __init__(self, message: str, row: int) -> None:
        super().__init__(message)
        self.row = row


class CommitRefusedError(IngestError):
    """Commit attempted while the batch still has issues (or is empty)."""


class StoreError(IngestError):
    """The line-item or campaign store rejected the request."""
