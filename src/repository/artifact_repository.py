"""Repository coordinator for upload-then-index workflows.

This module composes the remote ledger and the local record store.
Writes go to the ledger first and are indexed only after the ledger
confirms them; reads are served from the local index, with the remote
gateway available as a fallback.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from pathlib import Path
import time
from types import TracebackType
from typing import Callable, Sequence

from core.config import TagLedgerConfig
from core.constants import DEFAULT_BATCH_DELAY_SECONDS, DEFAULT_UPLOAD_BATCH_SIZE
from core.errors import (
    IndexingFailure,
    QueryFailure,
    TagLedgerError,
    UploadFailure,
)
from core.logging_config import get_logger
from core.timestamps import now_millis, utc_now_iso
from core.types import (
    ArtifactRecord,
    ArtifactTags,
    BatchItemResult,
    BatchUploadItem,
    LedgerReceipt,
    QueryFilters,
    QueryOptions,
    QueryPage,
    UploadResult,
)
from core.upload_state import UploadTracker
from ledger.ledger_client import RemoteLedgerClient
from ledger.local_ledger import LocalLedger
from ledger.remote_query import RemoteQueryClient
from ledger.wire_tags import build_wire_tags
from repository.tag_validation import validate_tags
from store.record_payload import tags_to_payload
from store.record_store import RecordStore

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class RepositorySettings:
    """Write-path tuning.

    Attributes:
        batch_size: Default number of concurrent uploads per batch.
        batch_delay_seconds: Pause between consecutive batches.
        upload_timeout_seconds: Optional deadline per remote write.
    """

    batch_size: int = DEFAULT_UPLOAD_BATCH_SIZE
    batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS
    upload_timeout_seconds: float | None = None


class ArtifactRepository:
    """Primary entry point for uploading and rediscovering artifacts."""

    def __init__(
        self,
        store: RecordStore,
        ledger: RemoteLedgerClient,
        remote_query: RemoteQueryClient | None = None,
        settings: RepositorySettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        """Create a repository coordinator.

        Args:
            store: Local record store.
            ledger: Remote ledger write sink.
            remote_query: Optional remote gateway query client.
            settings: Write-path tuning.
            sleep: Blocking wait used for inter-batch pacing.
            clock: Source of index timestamps in epoch milliseconds.
        """
        self._store = store
        self._ledger = ledger
        self._remote_query = remote_query
        self._settings = settings or RepositorySettings()
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config: TagLedgerConfig) -> "ArtifactRepository":
        """Build a repository backed by the configured local paths.

        Args:
            config: Runtime configuration.

        Returns:
            Repository using the SQLite index, the filesystem ledger,
            and the configured query gateway.
        """
        settings = RepositorySettings(
            batch_size=config.batch_size,
            batch_delay_seconds=config.batch_delay_seconds,
            upload_timeout_seconds=config.upload_timeout_seconds,
        )
        return cls(
            store=RecordStore(config.index_path),
            ledger=LocalLedger(config.ledger_root),
            remote_query=RemoteQueryClient(config.gateway_url),
            settings=settings,
        )

    def upload_one(
        self,
        payload: bytes,
        tags: ArtifactTags,
        want_receipt: bool = False,
    ) -> UploadResult:
        """Upload one payload and index it locally.

        Args:
            payload: Payload bytes.
            tags: Artifact tags.
            want_receipt: Whether to keep the ledger receipt.

        Returns:
            Ledger id and optional receipt.

        Raises:
            UploadFailure: If the remote write failed; nothing was indexed.
            IndexingFailure: If the artifact is on the ledger but the local
                index write failed; retry with ``index_uploaded``.
        """
        return self._upload_tracked(payload, tags, want_receipt, UploadTracker())

    def upload_file(
        self,
        file_path: Path,
        tags: ArtifactTags,
        want_receipt: bool = False,
    ) -> UploadResult:
        """Read a local file and upload its bytes.

        Raises:
            UploadFailure: If the file cannot be read or the write failed.
            IndexingFailure: If only the local index write failed.
        """
        try:
            payload = file_path.read_bytes()
        except OSError as error:
            raise UploadFailure(
                f"Failed to read upload source {file_path}: {error}. "
                "Check that the file exists and is readable."
            ) from error
        return self.upload_one(payload, tags, want_receipt)

    def index_uploaded(
        self,
        artifact_id: str,
        tags: ArtifactTags,
        receipt: str | None = None,
    ) -> ArtifactRecord:
        """Index an artifact that already exists on the remote ledger.

        This is the local-only repair path after an IndexingFailure.

        Args:
            artifact_id: Ledger transaction id.
            tags: Tags the artifact was uploaded with.
            receipt: Optional ledger receipt.

        Returns:
            Indexed record.

        Raises:
            IndexingFailure: If the local index write failed again.
        """
        record = self._build_record(artifact_id, tags, receipt)
        try:
            self._store.upsert(record)
        except TagLedgerError as error:
            raise _indexing_failure(artifact_id, tags, receipt, error) from error
        _LOGGER.info("artifact_reindexed", artifact_id=artifact_id)
        return record

    def upload_batch(
        self,
        items: Sequence[BatchUploadItem],
        want_receipt: bool = False,
        batch_size: int | None = None,
    ) -> list[BatchItemResult]:
        """Upload items in paced, sequential batches of concurrent writes.

        Per-item failures are attached to that item's result; siblings are
        unaffected. Results follow input order.

        Args:
            items: Items to upload.
            want_receipt: Whether to keep ledger receipts.
            batch_size: Items per batch; settings default when omitted.

        Returns:
            One result per input item, in input order.

        Raises:
            UploadFailure: If the items cannot be partitioned into batches.
        """
        size = self._settings.batch_size if batch_size is None else batch_size
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise UploadFailure(
                f"Cannot partition batch upload with batch_size={size!r}: "
                "expected a positive integer."
            )
        batches = [items[start : start + size] for start in range(0, len(items), size)]
        results: list[BatchItemResult] = []
        with ThreadPoolExecutor(max_workers=size, thread_name_prefix="tagledger-upload") as pool:
            for batch_index, batch in enumerate(batches):
                futures = [
                    pool.submit(self._upload_batch_item, item, want_receipt) for item in batch
                ]
                batch_results = [future.result() for future in futures]
                results.extend(batch_results)
                _LOGGER.info(
                    "batch_completed",
                    batch_index=batch_index,
                    batch_count=len(batches),
                    item_count=len(batch_results),
                    failed_count=sum(1 for result in batch_results if not result.succeeded),
                )
                if batch_index < len(batches) - 1:
                    self._sleep(self._settings.batch_delay_seconds)
        return results

    def query(self, options: QueryOptions | None = None) -> QueryPage:
        """Query the local index; an empty page is a normal outcome.

        Raises:
            QueryFailure: If the request is invalid or the index fails.
        """
        return self._store.query(options or QueryOptions())

    def query_remote(self, options: QueryOptions | None = None) -> QueryPage:
        """Query the remote ledger gateway with the local filter vocabulary.

        Raises:
            QueryFailure: If no gateway client is configured or it fails.
        """
        if self._remote_query is None:
            raise QueryFailure(
                "Remote query is not configured for this repository. "
                "Pass a RemoteQueryClient to enable the fallback read path."
            )
        return self._remote_query.query(options or QueryOptions())

    def latest_version(self, dataset_name: str, split: str | None = None) -> ArtifactRecord | None:
        """Return the most recently indexed record of a lineage.

        Latest means highest timestamp; version labels are not compared.
        """
        options = QueryOptions(
            filters=QueryFilters(dataset_name=dataset_name, split=split),
            sort_by="timestamp",
            sort_order="desc",
            limit=1,
        )
        page = self._store.query(options)
        return page.results[0] if page.results else None

    def all_versions(self, dataset_name: str, split: str | None = None) -> list[ArtifactRecord]:
        """Return every record of a lineage, newest first."""
        options = QueryOptions(
            filters=QueryFilters(dataset_name=dataset_name, split=split),
            sort_by="timestamp",
            sort_order="desc",
            limit=None,
        )
        return list(self._store.query(options).results)

    def get_record(self, artifact_id: str) -> ArtifactRecord | None:
        """Return one indexed record by ledger id."""
        return self._store.get_by_id(artifact_id)

    def get_balance(self) -> float:
        """Return the remote ledger account balance.

        Raises:
            TagLedgerError: If the ledger cannot report a balance.
        """
        try:
            return self._ledger.get_balance()
        except Exception as error:
            raise TagLedgerError(f"Failed to get ledger balance: {error}.") from error

    def get_price(self, size_bytes: int) -> float:
        """Return the remote ledger price for ``size_bytes`` bytes.

        Raises:
            TagLedgerError: If the ledger cannot quote a price.
        """
        try:
            return self._ledger.get_price(size_bytes)
        except Exception as error:
            raise TagLedgerError(
                f"Failed to get ledger price for {size_bytes} bytes: {error}."
            ) from error

    def close(self) -> None:
        """Release the record store and the gateway client."""
        self._store.close()
        if self._remote_query is not None:
            self._remote_query.close()

    def __enter__(self) -> "ArtifactRepository":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _upload_batch_item(self, item: BatchUploadItem, want_receipt: bool) -> BatchItemResult:
        tracker = UploadTracker()
        try:
            result = self._upload_tracked(item.payload, item.tags, want_receipt, tracker)
        except IndexingFailure as error:
            _LOGGER.warning(
                "batch_item_failed",
                source_ref=item.source_ref,
                state=tracker.state,
                error=str(error),
            )
            return BatchItemResult(
                source_ref=item.source_ref,
                state=tracker.state,
                id=error.artifact_id,
                receipt=error.receipt,
                error=error,
            )
        except Exception as error:
            # Unexpected errors stay in this item's slot so siblings keep theirs.
            _LOGGER.warning(
                "batch_item_failed",
                source_ref=item.source_ref,
                state=tracker.state,
                error=str(error),
            )
            return BatchItemResult(source_ref=item.source_ref, state=tracker.state, error=error)
        return BatchItemResult(
            source_ref=item.source_ref,
            state=tracker.state,
            id=result.id,
            receipt=result.receipt,
        )

    def _upload_tracked(
        self,
        payload: bytes,
        tags: ArtifactTags,
        want_receipt: bool,
        tracker: UploadTracker,
    ) -> UploadResult:
        validate_tags(tags)
        ledger_receipt = self._write_remote(payload, tags, tracker)
        receipt = ledger_receipt.receipt if want_receipt else None
        tracker.advance("indexing_in_flight")
        try:
            record = self._build_record(ledger_receipt.id, tags, receipt)
            self._store.upsert(record)
        except Exception as error:
            # The artifact is on the ledger from here on; every failure is an indexing one.
            tracker.advance("indexing_failed")
            _LOGGER.warning(
                "artifact_indexing_failed",
                artifact_id=ledger_receipt.id,
                error=str(error),
            )
            raise _indexing_failure(ledger_receipt.id, tags, receipt, error) from error
        tracker.advance("indexed")
        _LOGGER.info(
            "artifact_indexed",
            artifact_id=record.id,
            dataset_name=tags.dataset_name,
            split=tags.split,
            version=tags.version,
            timestamp=record.timestamp,
        )
        return UploadResult(id=record.id, receipt=receipt)

    def _write_remote(
        self,
        payload: bytes,
        tags: ArtifactTags,
        tracker: UploadTracker,
    ) -> LedgerReceipt:
        tracker.advance("remote_write_in_flight")
        try:
            ledger_receipt = self._call_ledger(payload, tags)
        except UploadFailure as error:
            tracker.advance("remote_write_failed")
            _LOGGER.warning(
                "artifact_upload_failed",
                dataset_name=tags.dataset_name,
                error=str(error),
            )
            raise
        except Exception as error:
            tracker.advance("remote_write_failed")
            _LOGGER.warning(
                "artifact_upload_failed",
                dataset_name=tags.dataset_name,
                error=str(error),
            )
            raise UploadFailure(
                f"Remote ledger write failed: {error}. "
                "The artifact never reached the ledger; it is safe to retry the upload."
            ) from error
        tracker.advance("remote_write_succeeded")
        _LOGGER.info(
            "artifact_uploaded",
            artifact_id=ledger_receipt.id,
            dataset_name=tags.dataset_name,
            size=len(payload),
        )
        return ledger_receipt

    def _call_ledger(self, payload: bytes, tags: ArtifactTags) -> LedgerReceipt:
        wire_tags = build_wire_tags(tags)
        timeout_seconds = self._settings.upload_timeout_seconds
        if timeout_seconds is None:
            return self._ledger.upload(payload, wire_tags)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tagledger-timed-upload")
        try:
            future = executor.submit(self._ledger.upload, payload, wire_tags)
            try:
                return future.result(timeout=timeout_seconds)
            except FuturesTimeoutError as error:
                # A finished future re-raised the ledger's own timeout.
                if future.done():
                    raise
                _LOGGER.warning(
                    "artifact_upload_timed_out",
                    dataset_name=tags.dataset_name,
                    timeout_seconds=timeout_seconds,
                )
                raise UploadFailure(
                    f"Remote ledger write timed out after {timeout_seconds} seconds. "
                    "The artifact was not indexed; verify on the ledger before retrying."
                ) from error
        finally:
            executor.shutdown(wait=False)

    def _build_record(
        self,
        artifact_id: str,
        tags: ArtifactTags,
        receipt: str | None,
    ) -> ArtifactRecord:
        return ArtifactRecord(
            id=artifact_id,
            timestamp=self._clock(),
            tags=tags,
            receipt=receipt,
            created_at=utc_now_iso(),
        )


def _indexing_failure(
    artifact_id: str,
    tags: ArtifactTags,
    receipt: str | None,
    error: Exception,
) -> IndexingFailure:
    return IndexingFailure(
        f"Artifact '{artifact_id}' is stored on the remote ledger but local indexing "
        f"failed: {error}. Retry indexing alone; do not upload it again.",
        artifact_id=artifact_id,
        receipt=receipt,
        tags_payload=tags_to_payload(tags),
    )
