"""Filesystem-backed append-only ledger.

This module implements the remote ledger protocol on a local directory
for development, CLI use, and tests. Each upload is stored as a new,
never-modified transaction with a payload file and a JSON manifest.
Fees are a flat price per byte debited from a persisted balance.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
import hashlib
import json
from pathlib import Path
import threading
from typing import Any, Sequence
from uuid import uuid4

from core.constants import (
    DEFAULT_LEDGER_BALANCE,
    DEFAULT_PRICE_PER_BYTE,
    LEDGER_ACCOUNT_FILE_NAME,
    LEDGER_TRANSACTIONS_DIR_NAME,
)
from core.errors import LedgerRejectedError, TagLedgerError, UploadFailure
from core.logging_config import get_logger
from core.timestamps import now_millis
from core.types import LedgerReceipt
from ledger.ledger_client import WireTag

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class LedgerTransaction:
    """One stored ledger transaction.

    Attributes:
        id: Transaction id.
        tags: Wire tags in upload order.
        size: Payload size in bytes.
        timestamp: Ledger write time in epoch milliseconds.
        payload_sha256: Hex digest of the payload.
    """

    id: str
    tags: tuple[WireTag, ...]
    size: int
    timestamp: int
    payload_sha256: str


class LocalLedger:
    """Append-only ledger persisted under one directory."""

    def __init__(
        self,
        ledger_root: Path,
        initial_balance: float = DEFAULT_LEDGER_BALANCE,
        price_per_byte: float = DEFAULT_PRICE_PER_BYTE,
    ) -> None:
        """Open or create a ledger directory.

        Args:
            ledger_root: Directory holding transactions and account state.
            initial_balance: Balance assigned when the account is created.
            price_per_byte: Fee charged per payload byte.
        """
        self._transactions_root = ledger_root / LEDGER_TRANSACTIONS_DIR_NAME
        self._account_path = ledger_root / LEDGER_ACCOUNT_FILE_NAME
        self._price_per_byte = price_per_byte
        self._lock = threading.Lock()
        self._transactions_root.mkdir(parents=True, exist_ok=True)
        if not self._account_path.exists():
            self._write_account({"balance": initial_balance})

    def upload(self, payload: bytes, tags: Sequence[WireTag]) -> LedgerReceipt:
        """Store a payload as a new transaction and debit its price.

        Args:
            payload: Payload bytes.
            tags: Wire tags to attach.

        Returns:
            Transaction id with a receipt binding id and payload digest.

        Raises:
            LedgerRejectedError: If the balance cannot cover the price.
            UploadFailure: If the transaction cannot be persisted.
        """
        wire_tags = tuple((str(name), str(value)) for name, value in tags)
        payload_digest = hashlib.sha256(payload).hexdigest()
        transaction_id = _build_transaction_id(payload_digest, wire_tags)
        price = self.get_price(len(payload))
        transaction = LedgerTransaction(
            id=transaction_id,
            tags=wire_tags,
            size=len(payload),
            timestamp=now_millis(),
            payload_sha256=payload_digest,
        )
        with self._lock:
            balance = self.get_balance()
            if price > balance:
                raise LedgerRejectedError(
                    f"Ledger rejected upload of {len(payload)} bytes: price {price} exceeds "
                    f"balance {balance}. Fund the account before uploading."
                )
            self._write_transaction(transaction, payload)
            try:
                self._write_account({"balance": balance - price})
            except OSError as error:
                self._discard_transaction(transaction_id)
                raise UploadFailure(
                    f"Failed to debit ledger account for transaction {transaction_id}: {error}. "
                    "The transaction was rolled back; check write permissions and retry."
                ) from error
        _LOGGER.info(
            "ledger_transaction_written",
            transaction_id=transaction_id,
            size=len(payload),
            price=price,
        )
        return LedgerReceipt(
            id=transaction_id,
            receipt=_build_receipt(transaction_id, payload_digest),
        )

    def get_balance(self) -> float:
        """Return the persisted account balance."""
        account = _read_json_object(self._account_path)
        return float(account["balance"])

    def get_price(self, size_bytes: int) -> float:
        """Return the fee for storing ``size_bytes`` bytes."""
        if size_bytes < 0:
            raise TagLedgerError(f"Invalid payload size {size_bytes}: expected >= 0.")
        return size_bytes * self._price_per_byte

    def read_transaction(self, transaction_id: str) -> LedgerTransaction:
        """Load one transaction manifest.

        Raises:
            TagLedgerError: If the transaction does not exist or is corrupt.
        """
        manifest_path = self._transactions_root / f"{transaction_id}.json"
        if not manifest_path.exists():
            raise TagLedgerError(
                f"Ledger transaction '{transaction_id}' not found under {self._transactions_root}."
            )
        payload = _read_json_object(manifest_path)
        return LedgerTransaction(
            id=str(payload["id"]),
            tags=tuple((str(item["name"]), str(item["value"])) for item in payload["tags"]),
            size=int(payload["size"]),
            timestamp=int(payload["timestamp"]),
            payload_sha256=str(payload["payload_sha256"]),
        )

    def read_payload(self, transaction_id: str) -> bytes:
        """Return the stored payload bytes of one transaction."""
        payload_path = self._transactions_root / f"{transaction_id}.bin"
        try:
            return payload_path.read_bytes()
        except OSError as error:
            raise TagLedgerError(
                f"Failed to read payload for ledger transaction '{transaction_id}': {error}."
            ) from error

    def _write_transaction(self, transaction: LedgerTransaction, payload: bytes) -> None:
        manifest = {
            "id": transaction.id,
            "tags": [{"name": name, "value": value} for name, value in transaction.tags],
            "size": transaction.size,
            "timestamp": transaction.timestamp,
            "payload_sha256": transaction.payload_sha256,
        }
        try:
            (self._transactions_root / f"{transaction.id}.bin").write_bytes(payload)
            (self._transactions_root / f"{transaction.id}.json").write_text(
                json.dumps(manifest, indent=2) + "\n",
                encoding="utf-8",
            )
        except OSError as error:
            self._discard_transaction(transaction.id)
            raise UploadFailure(
                f"Failed to persist ledger transaction {transaction.id}: {error}. "
                "Check write permissions and available disk space."
            ) from error

    def _write_account(self, account: dict[str, Any]) -> None:
        self._account_path.write_text(json.dumps(account, indent=2) + "\n", encoding="utf-8")

    def _discard_transaction(self, transaction_id: str) -> None:
        for suffix in (".bin", ".json"):
            (self._transactions_root / f"{transaction_id}{suffix}").unlink(missing_ok=True)


def _build_transaction_id(payload_digest: str, wire_tags: tuple[WireTag, ...]) -> str:
    """Build a unique 43-character base64url transaction id.

    Args:
        payload_digest: Hex digest of the payload.
        wire_tags: Attached wire tags.

    Returns:
        Transaction id string.
    """
    tag_seed = "|".join(f"{name}={value}" for name, value in wire_tags)
    seed = f"{payload_digest}|{tag_seed}|{uuid4().hex}"
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _build_receipt(transaction_id: str, payload_digest: str) -> str:
    return hashlib.sha256(f"{transaction_id}:{payload_digest}".encode("utf-8")).hexdigest()


def _read_json_object(payload_path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(payload_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        raise TagLedgerError(f"Failed to read ledger file {payload_path}: {error}.") from error
    if not isinstance(payload, dict):
        raise TagLedgerError(f"Invalid ledger file {payload_path}: expected JSON object.")
    return payload
