"""Unit tests for the upload-then-index repository coordinator."""

from __future__ import annotations

from dataclasses import replace
from itertools import count
from pathlib import Path
import threading
import time
from typing import Sequence

import pytest

from core.errors import (
    IndexingFailure,
    QueryFailure,
    StorageFailure,
    TagValidationError,
    UploadFailure,
)
from core.types import (
    ArtifactRecord,
    BatchUploadItem,
    LedgerReceipt,
    QueryFilters,
    QueryOptions,
    build_tags,
)
from ledger.local_ledger import LocalLedger
from repository.artifact_repository import ArtifactRepository, RepositorySettings
from store.record_store import RecordStore


class _FakeLedger:
    """In-memory ledger that fails for configured payloads."""

    def __init__(self, failing_payloads: Sequence[bytes] = (), delay_seconds: float = 0.0):
        self.uploads: list[tuple[bytes, list[tuple[str, str]]]] = []
        self._failing_payloads = set(failing_payloads)
        self._delay_seconds = delay_seconds
        self._ids = count(1)
        self._lock = threading.Lock()

    def upload(self, payload: bytes, tags) -> LedgerReceipt:
        if self._delay_seconds:
            time.sleep(self._delay_seconds)
        if payload in self._failing_payloads:
            raise ConnectionError("gateway unreachable")
        with self._lock:
            self.uploads.append((payload, list(tags)))
            transaction_id = f"tx-{next(self._ids)}"
        return LedgerReceipt(id=transaction_id, receipt=f"receipt-{transaction_id}")

    def get_balance(self) -> float:
        return 42.0

    def get_price(self, size_bytes: int) -> float:
        return float(size_bytes)


class _TimingOutLedger(_FakeLedger):
    """Ledger whose transport reports its own socket timeout."""

    def upload(self, payload: bytes, tags) -> LedgerReceipt:
        raise TimeoutError("socket read timed out")


class _FailingStore:
    """Record store wrapper whose next upserts fail."""

    def __init__(
        self,
        store: RecordStore,
        failures: int = 1,
        error: Exception | None = None,
    ) -> None:
        self._store = store
        self._failures = failures
        self._error = error or StorageFailure("disk full")

    def upsert(self, record: ArtifactRecord) -> None:
        if self._failures > 0:
            self._failures -= 1
            raise self._error
        self._store.upsert(record)

    def __getattr__(self, name: str):
        return getattr(self._store, name)


def _tags(version: str = "1.0.0", split: str = "train", dataset_name: str = "mnist"):
    return build_tags(
        dataset_name=dataset_name,
        split=split,
        version=version,
        owner="alice",
        created_at="2024-01-01T00:00:00Z",
        app="vision-lab",
    )


def _repository(
    tmp_path: Path,
    ledger=None,
    store=None,
    sleep=None,
    settings: RepositorySettings | None = None,
) -> ArtifactRepository:
    clock = count(1000, 1000)
    return ArtifactRepository(
        store=store or RecordStore(tmp_path / "index.sqlite3"),
        ledger=ledger or _FakeLedger(),
        settings=settings or RepositorySettings(batch_delay_seconds=0.0),
        sleep=sleep or (lambda seconds: None),
        clock=lambda: next(clock),
    )


def test_upload_one_indexes_record(tmp_path: Path) -> None:
    """A successful upload should be immediately queryable."""
    with _repository(tmp_path) as repository:
        result = repository.upload_one(b"weights", _tags())

        record = repository.get_record(result.id)

    assert record is not None and record.tags.version == "1.0.0"


def test_upload_one_sends_wire_tags_to_ledger(tmp_path: Path) -> None:
    """The ledger should receive the capitalized wire vocabulary."""
    ledger = _FakeLedger()
    with _repository(tmp_path, ledger=ledger) as repository:
        repository.upload_one(b"weights", _tags())

    assert ("Dataset-Name", "mnist") in ledger.uploads[0][1]


def test_upload_one_keeps_receipt_only_when_requested(tmp_path: Path) -> None:
    """Receipts are opt-in per upload."""
    with _repository(tmp_path) as repository:
        without_receipt = repository.upload_one(b"a", _tags())
        with_receipt = repository.upload_one(b"b", _tags(), want_receipt=True)

        stored = repository.get_record(with_receipt.id)

    assert without_receipt.receipt is None
    assert with_receipt.receipt == "receipt-tx-2"
    assert stored is not None and stored.receipt == "receipt-tx-2"


def test_upload_failure_leaves_no_index_entry(tmp_path: Path) -> None:
    """A failed remote write must not create a local record."""
    ledger = _FakeLedger(failing_payloads=[b"broken"])
    with _repository(tmp_path, ledger=ledger) as repository:
        with pytest.raises(UploadFailure):
            repository.upload_one(b"broken", _tags())

        page = repository.query(QueryOptions(limit=None))

    assert page.results == ()


def test_upload_rejects_blank_required_tags_before_writing(tmp_path: Path) -> None:
    """Validation should run before the ledger is contacted."""
    ledger = _FakeLedger()
    with _repository(tmp_path, ledger=ledger) as repository:
        with pytest.raises(TagValidationError):
            repository.upload_one(b"weights", _tags(version=" "))

    assert ledger.uploads == []


def test_indexing_failure_reports_id_and_can_be_repaired(tmp_path: Path) -> None:
    """A local index failure should carry the ledger id for a local-only retry."""
    ledger = _FakeLedger()
    store = _FailingStore(RecordStore(tmp_path / "index.sqlite3"))
    with _repository(tmp_path, ledger=ledger, store=store) as repository:
        with pytest.raises(IndexingFailure) as failure:
            repository.upload_one(b"weights", _tags())

        repository.index_uploaded(failure.value.artifact_id, _tags())

        record = repository.get_record(failure.value.artifact_id)

    assert record is not None and len(ledger.uploads) == 1


def test_latest_version_uses_timestamp_not_version_label(tmp_path: Path) -> None:
    """Latest means most recently indexed, even if the label sorts lower."""
    with _repository(tmp_path) as repository:
        repository.upload_one(b"a", _tags(version="9.9.9"))
        repository.upload_one(b"b", _tags(version="1.0.0"))

        latest = repository.latest_version("mnist")

    assert latest is not None and latest.tags.version == "1.0.0"


def test_latest_version_filters_by_split(tmp_path: Path) -> None:
    """A split narrows the lineage."""
    with _repository(tmp_path) as repository:
        repository.upload_one(b"a", _tags(version="1", split="test"))
        repository.upload_one(b"b", _tags(version="2", split="train"))

        latest = repository.latest_version("mnist", split="test")

    assert latest is not None and latest.tags.version == "1"


def test_latest_version_returns_none_for_unknown_dataset(tmp_path: Path) -> None:
    """An unknown lineage has no latest version."""
    with _repository(tmp_path) as repository:
        assert repository.latest_version("missing") is None


def test_all_versions_returns_every_record_newest_first(tmp_path: Path) -> None:
    """All versions should not be capped by the default page size."""
    with _repository(tmp_path) as repository:
        for index in range(55):
            repository.upload_one(str(index).encode(), _tags(version=str(index)))

        versions = repository.all_versions("mnist")

    assert len(versions) == 55 and versions[0].tags.version == "54"


def test_upload_batch_isolates_item_failures(tmp_path: Path) -> None:
    """One failing item should not affect its siblings."""
    ledger = _FakeLedger(failing_payloads=[b"two"])
    items = [
        BatchUploadItem(source_ref="one", payload=b"one", tags=_tags(version="1")),
        BatchUploadItem(source_ref="two", payload=b"two", tags=_tags(version="2")),
        BatchUploadItem(source_ref="three", payload=b"three", tags=_tags(version="3")),
    ]
    with _repository(tmp_path, ledger=ledger) as repository:
        results = repository.upload_batch(items)

        indexed = repository.query(QueryOptions(limit=None)).results

    assert [result.source_ref for result in results] == ["one", "two", "three"]
    assert [result.succeeded for result in results] == [True, False, True]
    assert results[1].state == "remote_write_failed"
    assert isinstance(results[1].error, UploadFailure)
    assert len(indexed) == 2


def test_upload_batch_preserves_input_order_under_concurrency(tmp_path: Path) -> None:
    """Results should follow input order, not completion order."""
    ledger = _FakeLedger(delay_seconds=0.01)
    items = [
        BatchUploadItem(source_ref=f"item-{index}", payload=bytes([index]), tags=_tags())
        for index in range(7)
    ]
    with _repository(tmp_path, ledger=ledger) as repository:
        results = repository.upload_batch(items, batch_size=3)

    assert [result.source_ref for result in results] == [f"item-{index}" for index in range(7)]


def test_upload_batch_sleeps_between_batches_only(tmp_path: Path) -> None:
    """Pacing applies between consecutive batches, not after the last."""
    sleeps: list[float] = []
    settings = RepositorySettings(batch_size=2, batch_delay_seconds=1.0)
    items = [
        BatchUploadItem(source_ref=str(index), payload=bytes([index]), tags=_tags())
        for index in range(5)
    ]
    with _repository(tmp_path, sleep=sleeps.append, settings=settings) as repository:
        repository.upload_batch(items)

    assert sleeps == [1.0, 1.0]


def test_upload_batch_records_indexing_failure_with_id(tmp_path: Path) -> None:
    """Items stored remotely but not indexed should keep their ledger id."""
    store = _FailingStore(RecordStore(tmp_path / "index.sqlite3"))
    items = [BatchUploadItem(source_ref="only", payload=b"x", tags=_tags())]
    with _repository(tmp_path, store=store) as repository:
        results = repository.upload_batch(items)

    assert results[0].state == "indexing_failed" and results[0].id == "tx-1"


def test_upload_batch_marks_invalid_tags_as_pending(tmp_path: Path) -> None:
    """Items rejected before any write stay pending with an error."""
    items = [BatchUploadItem(source_ref="bad", payload=b"x", tags=_tags(split=""))]
    with _repository(tmp_path) as repository:
        results = repository.upload_batch(items)

    assert results[0].state == "pending" and isinstance(results[0].error, TagValidationError)


def test_upload_batch_rejects_non_positive_batch_size(tmp_path: Path) -> None:
    """A batch size below one cannot partition the items."""
    with _repository(tmp_path) as repository:
        with pytest.raises(UploadFailure):
            repository.upload_batch([], batch_size=0)


def test_upload_times_out_as_upload_failure(tmp_path: Path) -> None:
    """A remote write exceeding its deadline should surface as UploadFailure."""
    ledger = _FakeLedger(delay_seconds=0.5)
    settings = RepositorySettings(batch_delay_seconds=0.0, upload_timeout_seconds=0.05)
    with _repository(tmp_path, ledger=ledger, settings=settings) as repository:
        with pytest.raises(UploadFailure):
            repository.upload_one(b"slow", _tags())

        assert repository.query(QueryOptions(limit=None)).results == ()


def test_query_remote_requires_gateway_client(tmp_path: Path) -> None:
    """Remote queries fail clearly when no gateway is configured."""
    with _repository(tmp_path) as repository:
        with pytest.raises(QueryFailure):
            repository.query_remote(QueryOptions(filters=QueryFilters(dataset_name="mnist")))


def test_balance_and_price_delegate_to_ledger(tmp_path: Path) -> None:
    """Account queries are forwarded to the ledger."""
    with _repository(tmp_path) as repository:
        assert repository.get_balance() == 42.0
        assert repository.get_price(10) == 10.0


def test_upload_file_against_local_ledger(tmp_path: Path) -> None:
    """Files uploaded to the local ledger should be indexed and stored."""
    source = tmp_path / "weights.bin"
    source.write_bytes(b"weights")
    ledger = LocalLedger(tmp_path / "ledger")
    with _repository(tmp_path, ledger=ledger) as repository:
        result = repository.upload_file(source, _tags())

    assert ledger.read_payload(result.id) == b"weights"


def test_upload_file_raises_for_missing_source(tmp_path: Path) -> None:
    """Unreadable files should fail before contacting the ledger."""
    with _repository(tmp_path) as repository:
        with pytest.raises(UploadFailure):
            repository.upload_file(tmp_path / "missing.bin", _tags())


def test_ledger_timeout_keeps_cause_without_deadline(tmp_path: Path) -> None:
    """A timeout raised by the ledger itself should keep its message."""
    with _repository(tmp_path, ledger=_TimingOutLedger()) as repository:
        with pytest.raises(UploadFailure, match="socket read timed out"):
            repository.upload_one(b"weights", _tags())


def test_ledger_timeout_keeps_cause_with_deadline(tmp_path: Path) -> None:
    """A ledger timeout inside the deadline is not reported as the deadline expiring."""
    settings = RepositorySettings(batch_delay_seconds=0.0, upload_timeout_seconds=5.0)
    with _repository(tmp_path, ledger=_TimingOutLedger(), settings=settings) as repository:
        with pytest.raises(UploadFailure, match="socket read timed out"):
            repository.upload_one(b"weights", _tags())


def test_upload_batch_keeps_sibling_results_for_malformed_tags(tmp_path: Path) -> None:
    """A malformed item should fail alone while its siblings are indexed."""
    items = [
        BatchUploadItem(source_ref="one", payload=b"one", tags=_tags(version="1")),
        BatchUploadItem(
            source_ref="two",
            payload=b"two",
            tags=replace(_tags(version="2"), extra_fields=None),
        ),
        BatchUploadItem(source_ref="three", payload=b"three", tags=_tags(version="3")),
    ]
    with _repository(tmp_path) as repository:
        results = repository.upload_batch(items)

    assert [result.succeeded for result in results] == [True, False, True]
    assert results[1].state == "pending" and isinstance(results[1].error, TagValidationError)


def test_upload_batch_captures_unexpected_item_errors(tmp_path: Path) -> None:
    """Errors outside the domain hierarchy still land in the item's slot."""
    items = [
        BatchUploadItem(source_ref="one", payload=b"one", tags=_tags()),
        BatchUploadItem(source_ref="broken", payload=b"two", tags=None),  # type: ignore[arg-type]
    ]
    with _repository(tmp_path) as repository:
        results = repository.upload_batch(items)

    assert results[0].succeeded
    assert results[1].state == "pending" and isinstance(results[1].error, AttributeError)


def test_unexpected_store_error_after_remote_write_keeps_ledger_id(tmp_path: Path) -> None:
    """Any failure after the ledger confirmed a write is an indexing failure."""
    store = _FailingStore(RecordStore(tmp_path / "index.sqlite3"), error=RuntimeError("boom"))
    items = [BatchUploadItem(source_ref="only", payload=b"x", tags=_tags())]
    with _repository(tmp_path, store=store) as repository:
        results = repository.upload_batch(items)

    assert results[0].state == "indexing_failed" and results[0].id == "tx-1"
    assert isinstance(results[0].error, IndexingFailure)
