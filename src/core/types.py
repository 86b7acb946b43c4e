"""Shared typed models.

This module defines immutable data models used by the store, query
engine, ledger clients, and repository coordinator to keep interfaces
explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

from core.constants import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_ORDER,
)
from core.upload_state import UploadState

SortField = Literal["timestamp", "createdAt"]
SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True)
class ArtifactTags:
    """Tag bag attached to every uploaded artifact.

    Attributes:
        app: Producing application name.
        content_type: MIME type of the payload.
        dataset_name: Logical dataset (lineage) name.
        split: Dataset split such as ``train`` or ``test``.
        version: Opaque version label; never parsed or compared.
        owner: Owner identifier.
        created_at: Caller-supplied ISO-8601 creation time.
        extra_fields: Additional tags carried along but not indexed.
    """

    app: str
    content_type: str
    dataset_name: str
    split: str
    version: str
    owner: str
    created_at: str
    extra_fields: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ArtifactRecord:
    """One indexed artifact row.

    Attributes:
        id: Remote ledger transaction id; unique and immutable.
        timestamp: Epoch milliseconds assigned when the record was indexed.
        tags: Artifact tag bag.
        receipt: Optional ledger receipt requested at upload time.
        created_at: ISO-8601 local index insertion time, ``None`` for
            records read from the remote query gateway.
    """

    id: str
    timestamp: int
    tags: ArtifactTags
    receipt: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class QueryFilters:
    """Conjunctive query constraints.

    Attributes:
        dataset_name: Optional exact dataset name match.
        split: Optional exact split match.
        version: Optional exact version label match.
        content_type: Optional exact content type match.
        app: Optional exact app match.
        owner: Optional exact owner match.
        start_time: Optional inclusive ISO-8601 lower bound on timestamp.
        end_time: Optional inclusive ISO-8601 upper bound on timestamp.
    """

    dataset_name: str | None = None
    split: str | None = None
    version: str | None = None
    content_type: str | None = None
    app: str | None = None
    owner: str | None = None
    start_time: str | None = None
    end_time: str | None = None


@dataclass(frozen=True)
class QueryOptions:
    """Filter, sort, and pagination request.

    Attributes:
        filters: Conjunctive filter constraints.
        sort_by: Sort column, ``timestamp`` or ``createdAt``.
        sort_order: ``asc`` or ``desc``.
        limit: Page size; ``None`` returns every match in one page.
        cursor: Timestamp of the previous page's last row, as a string.
    """

    filters: QueryFilters = field(default_factory=QueryFilters)
    sort_by: SortField = DEFAULT_SORT_BY
    sort_order: SortOrder = DEFAULT_SORT_ORDER
    limit: int | None = DEFAULT_QUERY_LIMIT
    cursor: str | None = None


@dataclass(frozen=True)
class QueryPage:
    """One page of query results.

    Attributes:
        results: Matching records in requested order.
        next_cursor: Continuation cursor, ``None`` at end of results.
    """

    results: tuple[ArtifactRecord, ...]
    next_cursor: str | None = None


@dataclass(frozen=True)
class LedgerReceipt:
    """Remote ledger write confirmation.

    Attributes:
        id: Transaction id assigned by the ledger.
        receipt: Optional proof-of-inclusion string.
    """

    id: str
    receipt: str | None = None


@dataclass(frozen=True)
class UploadResult:
    """Outcome of one successful upload-then-index operation."""

    id: str
    receipt: str | None = None


@dataclass(frozen=True)
class BatchUploadItem:
    """One entry of a batch upload request.

    Attributes:
        source_ref: Caller reference echoed back in the result.
        payload: Payload bytes to upload.
        tags: Tags to attach.
    """

    source_ref: str
    payload: bytes
    tags: ArtifactTags


@dataclass(frozen=True)
class BatchItemResult:
    """Per-item batch upload outcome.

    Attributes:
        source_ref: Reference of the originating request item.
        state: Terminal upload state reached by this item.
        id: Ledger transaction id when the remote write succeeded.
        receipt: Optional ledger receipt.
        error: Failure raised for this item, if any.
    """

    source_ref: str
    state: UploadState
    id: str | None = None
    receipt: str | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        """Return whether the item was uploaded and indexed."""
        return self.state == "indexed"


def build_tags(
    dataset_name: str,
    split: str,
    version: str,
    owner: str,
    created_at: str,
    app: str,
    content_type: str = DEFAULT_CONTENT_TYPE,
    extra_fields: Mapping[str, str] | None = None,
) -> ArtifactTags:
    """Build an ArtifactTags value with keyword-friendly defaults."""
    return ArtifactTags(
        app=app,
        content_type=content_type,
        dataset_name=dataset_name,
        split=split,
        version=version,
        owner=owner,
        created_at=created_at,
        extra_fields=dict(extra_fields or {}),
    )
