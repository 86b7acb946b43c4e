"""Public SDK surface for Tagledger.

This module provides a stable import path for library users.
It re-exports the repository coordinator and typed models.
"""

from __future__ import annotations

from core.config import TagLedgerConfig
from core.errors import (
    IndexingFailure,
    QueryFailure,
    StorageFailure,
    TagLedgerError,
    TagValidationError,
    UploadFailure,
)
from core.types import (
    ArtifactRecord,
    ArtifactTags,
    BatchItemResult,
    BatchUploadItem,
    QueryFilters,
    QueryOptions,
    QueryPage,
    UploadResult,
    build_tags,
)
from ledger.local_ledger import LocalLedger
from ledger.remote_query import RemoteQueryClient
from repository.artifact_repository import ArtifactRepository, RepositorySettings
from store.record_store import RecordStore

__all__ = [
    "ArtifactRecord",
    "ArtifactRepository",
    "ArtifactTags",
    "BatchItemResult",
    "BatchUploadItem",
    "IndexingFailure",
    "LocalLedger",
    "QueryFailure",
    "QueryFilters",
    "QueryOptions",
    "QueryPage",
    "RecordStore",
    "RemoteQueryClient",
    "RepositorySettings",
    "StorageFailure",
    "TagLedgerConfig",
    "TagLedgerError",
    "TagValidationError",
    "UploadFailure",
    "UploadResult",
    "build_tags",
]
