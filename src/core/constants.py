"""Core constants used across Tagledger modules.

This module centralizes defaults and the remote tag vocabulary.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".tagledger")
INDEX_FILE_NAME = "index.sqlite3"
LEDGER_DIR_NAME = "ledger"
LEDGER_TRANSACTIONS_DIR_NAME = "transactions"
LEDGER_ACCOUNT_FILE_NAME = "account.json"
DEFAULT_GATEWAY_URL = "https://gateway.irys.xyz"
DEFAULT_APP_NAME = "tagledger"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_QUERY_LIMIT = 50
DEFAULT_SORT_BY = "timestamp"
DEFAULT_SORT_ORDER = "desc"
SUPPORTED_SORT_FIELDS = ("timestamp", "createdAt")
SUPPORTED_SORT_ORDERS = ("asc", "desc")
DEFAULT_UPLOAD_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_SECONDS = 1.0
DEFAULT_REMOTE_QUERY_TIMEOUT_SECONDS = 30.0
DEFAULT_LEDGER_BALANCE = 1_000_000_000.0
DEFAULT_PRICE_PER_BYTE = 1.0
INDEX_SCHEMA_VERSION = 1

# Local tag-bag JSON keys, in canonical order.
TAG_FIELD_KEYS = (
    "app",
    "contentType",
    "datasetName",
    "split",
    "version",
    "owner",
    "createdAt",
)

# Remote ledger wire tag names, aligned with TAG_FIELD_KEYS.
WIRE_TAG_NAMES = (
    "App",
    "Content-Type",
    "Dataset-Name",
    "Split",
    "Version",
    "Owner",
    "Created-At",
)
