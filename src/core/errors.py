"""Tagledger exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each upload stage raises a distinct type so callers can tell an artifact
that never reached the ledger from one that is only missing locally.
"""

from __future__ import annotations

from typing import Mapping


class TagLedgerError(Exception):
    """Base exception for all Tagledger failures."""


class TagLedgerConfigError(TagLedgerError):
    """Raised for invalid runtime configuration."""


class TagLedgerManifestError(TagLedgerError):
    """Raised for invalid batch upload manifest files."""


class UploadFailure(TagLedgerError):
    """Raised when a remote ledger write did not succeed.

    The artifact never reached the remote ledger and no local index
    entry was written.
    """


class TagValidationError(UploadFailure):
    """Raised when upload tags are missing required fields."""


class LedgerRejectedError(UploadFailure):
    """Raised when the remote ledger refuses a write, e.g. low balance."""


class IndexingFailure(TagLedgerError):
    """Raised when the remote write succeeded but local indexing failed.

    Attributes:
        artifact_id: Remote ledger transaction id of the stored artifact.
        receipt: Optional receipt returned by the ledger.
        tags_payload: Serialized tag bag needed to retry indexing alone.
    """

    def __init__(
        self,
        message: str,
        artifact_id: str,
        receipt: str | None = None,
        tags_payload: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.artifact_id = artifact_id
        self.receipt = receipt
        self.tags_payload = dict(tags_payload or {})


class QueryFailure(TagLedgerError):
    """Raised for invalid query requests or store-level query errors."""


class StorageFailure(TagLedgerError):
    """Raised when the record store is unavailable, closed, or corrupt."""
