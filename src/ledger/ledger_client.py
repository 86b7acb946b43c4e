"""Remote ledger write-sink protocol.

Implementations accept a payload plus flat wire tags and return the
ledger transaction id with an optional receipt. Signing, fees, and
transport belong to the implementation.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from core.types import LedgerReceipt

WireTag = tuple[str, str]


class RemoteLedgerClient(Protocol):
    """Append-only, content-addressed remote ledger."""

    def upload(self, payload: bytes, tags: Sequence[WireTag]) -> LedgerReceipt:
        """Write one payload with its tags and return the ledger identity."""
        ...

    def get_balance(self) -> float:
        """Return the account balance in ledger units."""
        ...

    def get_price(self, size_bytes: int) -> float:
        """Return the price of storing ``size_bytes`` bytes."""
        ...
