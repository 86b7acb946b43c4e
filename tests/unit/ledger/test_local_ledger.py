"""Unit tests for the filesystem-backed ledger."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import LedgerRejectedError, TagLedgerError, UploadFailure
from ledger.local_ledger import LocalLedger

_WIRE_TAGS = [("App", "vision-lab"), ("Dataset-Name", "mnist")]


def test_upload_persists_payload_and_tags(tmp_path: Path) -> None:
    """Uploaded payloads should be readable back with their tags."""
    ledger = LocalLedger(tmp_path)

    receipt = ledger.upload(b"payload", _WIRE_TAGS)

    assert ledger.read_payload(receipt.id) == b"payload"
    assert list(ledger.read_transaction(receipt.id).tags) == _WIRE_TAGS


def test_upload_returns_distinct_ids_for_identical_payloads(tmp_path: Path) -> None:
    """Every upload is a new append-only transaction."""
    ledger = LocalLedger(tmp_path)

    first = ledger.upload(b"same", _WIRE_TAGS)
    second = ledger.upload(b"same", _WIRE_TAGS)

    assert first.id != second.id and len(first.id) == 43


def test_upload_debits_price_from_balance(tmp_path: Path) -> None:
    """Uploads should cost a flat price per byte."""
    ledger = LocalLedger(tmp_path, initial_balance=100.0, price_per_byte=2.0)

    ledger.upload(b"12345", _WIRE_TAGS)

    assert ledger.get_balance() == 90.0


def test_upload_rejects_when_balance_is_too_low(tmp_path: Path) -> None:
    """An unfunded account should refuse the write and keep no transaction."""
    ledger = LocalLedger(tmp_path, initial_balance=1.0)

    with pytest.raises(LedgerRejectedError):
        ledger.upload(b"too large", _WIRE_TAGS)

    assert list((tmp_path / "transactions").iterdir()) == []


def test_balance_persists_across_instances(tmp_path: Path) -> None:
    """The account file should be reused when the ledger is reopened."""
    LocalLedger(tmp_path, initial_balance=50.0).upload(b"abc", _WIRE_TAGS)

    assert LocalLedger(tmp_path, initial_balance=999.0).get_balance() == 47.0


def test_get_price_rejects_negative_size(tmp_path: Path) -> None:
    """Negative sizes cannot be priced."""
    with pytest.raises(TagLedgerError):
        LocalLedger(tmp_path).get_price(-1)


def test_read_transaction_raises_for_unknown_id(tmp_path: Path) -> None:
    """Unknown transaction ids should raise."""
    with pytest.raises(TagLedgerError):
        LocalLedger(tmp_path).read_transaction("missing")


def test_upload_rolls_back_transaction_when_debit_fails(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failed balance update should leave no half-written transaction."""
    ledger = LocalLedger(tmp_path, initial_balance=100.0)

    def fail_write_account(account: dict[str, object]) -> None:
        raise OSError("read-only file system")

    monkeypatch.setattr(ledger, "_write_account", fail_write_account)

    with pytest.raises(UploadFailure, match="rolled back"):
        ledger.upload(b"payload", _WIRE_TAGS)

    assert list((tmp_path / "transactions").iterdir()) == []
