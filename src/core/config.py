"""Runtime configuration model for Tagledger.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_APP_NAME,
    DEFAULT_BATCH_DELAY_SECONDS,
    DEFAULT_DATA_ROOT,
    DEFAULT_GATEWAY_URL,
    DEFAULT_UPLOAD_BATCH_SIZE,
    INDEX_FILE_NAME,
    LEDGER_DIR_NAME,
)
from core.errors import TagLedgerConfigError


@dataclass(frozen=True)
class TagLedgerConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for the index and local ledger.
        index_path: SQLite file holding the local metadata index.
        ledger_root: Directory of the filesystem-backed ledger.
        gateway_url: Base URL of the remote query gateway.
        app_name: Default ``App`` tag applied by the CLI.
        batch_size: Number of concurrent uploads per batch.
        batch_delay_seconds: Pause inserted between upload batches.
        upload_timeout_seconds: Optional deadline per remote write.
    """

    data_root: Path
    index_path: Path
    ledger_root: Path
    gateway_url: str
    app_name: str
    batch_size: int
    batch_delay_seconds: float
    upload_timeout_seconds: float | None

    @classmethod
    def from_env(cls) -> "TagLedgerConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            TagLedgerConfigError: If environment values are invalid.
        """
        data_root = Path(os.getenv("TAGLEDGER_DATA_ROOT", str(DEFAULT_DATA_ROOT)))
        data_root = data_root.expanduser().resolve()
        return cls(
            data_root=data_root,
            index_path=_parse_path("TAGLEDGER_INDEX_PATH", data_root / INDEX_FILE_NAME),
            ledger_root=_parse_path("TAGLEDGER_LEDGER_ROOT", data_root / LEDGER_DIR_NAME),
            gateway_url=os.getenv("TAGLEDGER_GATEWAY_URL", DEFAULT_GATEWAY_URL).rstrip("/"),
            app_name=os.getenv("TAGLEDGER_APP_NAME", DEFAULT_APP_NAME),
            batch_size=_parse_batch_size(
                os.getenv("TAGLEDGER_BATCH_SIZE", str(DEFAULT_UPLOAD_BATCH_SIZE))
            ),
            batch_delay_seconds=_parse_seconds(
                "TAGLEDGER_BATCH_DELAY_SECONDS",
                os.getenv("TAGLEDGER_BATCH_DELAY_SECONDS", str(DEFAULT_BATCH_DELAY_SECONDS)),
            ),
            upload_timeout_seconds=_parse_optional_seconds(
                "TAGLEDGER_UPLOAD_TIMEOUT_SECONDS",
                os.getenv("TAGLEDGER_UPLOAD_TIMEOUT_SECONDS"),
            ),
        )

    def with_data_root(self, data_root: Path) -> "TagLedgerConfig":
        """Return a copy rooted at a different data directory.

        Index and ledger paths are re-derived from the new root.
        """
        resolved_root = data_root.expanduser().resolve()
        return TagLedgerConfig(
            data_root=resolved_root,
            index_path=resolved_root / INDEX_FILE_NAME,
            ledger_root=resolved_root / LEDGER_DIR_NAME,
            gateway_url=self.gateway_url,
            app_name=self.app_name,
            batch_size=self.batch_size,
            batch_delay_seconds=self.batch_delay_seconds,
            upload_timeout_seconds=self.upload_timeout_seconds,
        )


def _parse_path(env_name: str, default_path: Path) -> Path:
    raw_value = os.getenv(env_name)
    if not raw_value:
        return default_path
    return Path(raw_value).expanduser().resolve()


def _parse_batch_size(raw_value: str) -> int:
    """Parse the upload batch size environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed positive batch size.

    Raises:
        TagLedgerConfigError: If value is not a positive integer.
    """
    try:
        batch_size = int(raw_value)
    except ValueError as error:
        raise TagLedgerConfigError(
            "Invalid TAGLEDGER_BATCH_SIZE value: "
            f"expected integer, got '{raw_value}'. "
            "Set TAGLEDGER_BATCH_SIZE to a positive number."
        ) from error
    if batch_size < 1:
        raise TagLedgerConfigError(
            f"Invalid TAGLEDGER_BATCH_SIZE value: expected >= 1, got {batch_size}."
        )
    return batch_size


def _parse_seconds(env_name: str, raw_value: str) -> float:
    try:
        seconds = float(raw_value)
    except ValueError as error:
        raise TagLedgerConfigError(
            f"Invalid {env_name} value: expected number of seconds, got '{raw_value}'."
        ) from error
    if seconds < 0:
        raise TagLedgerConfigError(f"Invalid {env_name} value: expected >= 0, got {seconds}.")
    return seconds


def _parse_optional_seconds(env_name: str, raw_value: str | None) -> float | None:
    if raw_value is None or not raw_value.strip():
        return None
    seconds = _parse_seconds(env_name, raw_value)
    if seconds == 0:
        raise TagLedgerConfigError(
            f"Invalid {env_name} value: timeout must be > 0. Unset it to disable timeouts."
        )
    return seconds
