"""SQLite-backed artifact record store.

This module persists one row per uploaded artifact and answers indexed
equality lookups over tag fields plus range lookups over timestamp.
All writes go through a single locked writer connection; reads use
per-thread connections so they can run concurrently under WAL.
"""

from __future__ import annotations

from pathlib import Path
import sqlite3
import threading
from types import TracebackType

from core.constants import INDEX_SCHEMA_VERSION, TAG_FIELD_KEYS
from core.errors import QueryFailure, StorageFailure
from core.logging_config import get_logger
from core.types import ArtifactRecord, QueryOptions, QueryPage
from store.query_engine import SELECT_COLUMNS, TABLE_NAME, compile_query, paginate
from store.record_payload import encode_tags, record_from_row

_LOGGER = get_logger(__name__)

_SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS schema_version (
    version      INTEGER NOT NULL,
    applied_at   TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id           TEXT PRIMARY KEY,
    timestamp    INTEGER NOT NULL,
    tags         TEXT NOT NULL,
    receipt      TEXT,
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_timestamp ON {TABLE_NAME} (timestamp);

INSERT INTO schema_version (version)
SELECT {INDEX_SCHEMA_VERSION}
WHERE NOT EXISTS (SELECT 1 FROM schema_version);
"""


def _tag_index_sql(tag_key: str) -> str:
    return (
        f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_{tag_key} "
        f"ON {TABLE_NAME} (json_extract(tags, '$.{tag_key}'))"
    )


class RecordStore:
    """Durable, queryable store of artifact records.

    Upserts replace rows by id and are visible to every query issued
    after the call returns. The store never deletes rows.
    """

    def __init__(self, index_path: Path) -> None:
        """Open or create the index file.

        Args:
            index_path: SQLite database file path.

        Raises:
            StorageFailure: If the database cannot be opened or initialized.
        """
        self._index_path = index_path
        self._write_lock = threading.Lock()
        self._readers_lock = threading.Lock()
        self._reader_connections: dict[threading.Thread, sqlite3.Connection] = {}
        self._closed = False
        try:
            index_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise StorageFailure(
                f"Failed to create index directory {index_path.parent}: {error}. "
                "Check write permissions for the data root."
            ) from error
        self._writer = self._connect()
        self._initialize_schema()

    @property
    def index_path(self) -> Path:
        """Return the backing database file path."""
        return self._index_path

    def upsert(self, record: ArtifactRecord) -> None:
        """Insert a record or replace the existing row with the same id.

        Args:
            record: Record to persist.

        Raises:
            StorageFailure: If the write fails or the store is closed.
        """
        params = (
            record.id,
            record.timestamp,
            encode_tags(record.tags),
            record.receipt,
            record.created_at or "",
        )
        with self._write_lock:
            writer = self._require_writer()
            try:
                with writer:
                    writer.execute(
                        f"INSERT OR REPLACE INTO {TABLE_NAME} "
                        "(id, timestamp, tags, receipt, created_at) VALUES (?, ?, ?, ?, ?)",
                        params,
                    )
            except sqlite3.Error as error:
                raise StorageFailure(
                    f"Failed to write record '{record.id}' to index {self._index_path}: "
                    f"{error}. Check disk space and database integrity."
                ) from error
        _LOGGER.debug("record_upserted", record_id=record.id, timestamp=record.timestamp)

    def query(self, options: QueryOptions) -> QueryPage:
        """Return one page of records matching the query options.

        Args:
            options: Filter, sort, and pagination request.

        Returns:
            Page of at most ``limit`` records, strictly after the cursor.

        Raises:
            QueryFailure: If the request is invalid or execution fails.
            StorageFailure: If the store is closed or rows are corrupt.
        """
        compiled = compile_query(options)
        reader = self._reader()
        try:
            rows = reader.execute(compiled.sql, compiled.params).fetchall()
        except sqlite3.Error as error:
            raise QueryFailure(
                f"Failed to query index {self._index_path}: {error}. "
                "Verify filter values and database integrity."
            ) from error
        records = [record_from_row(row) for row in rows]
        return paginate(records, compiled.page_limit)

    def get_by_id(self, record_id: str) -> ArtifactRecord | None:
        """Load one record by id, or ``None`` when absent."""
        reader = self._reader()
        try:
            row = reader.execute(
                f"SELECT {SELECT_COLUMNS} FROM {TABLE_NAME} WHERE id = ?",
                (record_id,),
            ).fetchone()
        except sqlite3.Error as error:
            raise QueryFailure(
                f"Failed to load record '{record_id}' from index {self._index_path}: {error}."
            ) from error
        if row is None:
            return None
        return record_from_row(row)

    def count(self) -> int:
        """Return the number of indexed records."""
        reader = self._reader()
        try:
            row = reader.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()
        except sqlite3.Error as error:
            raise QueryFailure(
                f"Failed to count records in {self._index_path}: {error}."
            ) from error
        return int(row[0])

    @property
    def open_reader_count(self) -> int:
        """Return the number of reader connections currently held."""
        with self._readers_lock:
            return len(self._reader_connections)

    def close(self) -> None:
        """Release every underlying connection. Safe to call twice."""
        with self._write_lock, self._readers_lock:
            if self._closed:
                return
            self._closed = True
            for connection in self._reader_connections.values():
                connection.close()
            self._reader_connections.clear()
            self._writer.close()
        _LOGGER.debug("record_store_closed", index_path=str(self._index_path))

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _connect(self) -> sqlite3.Connection:
        try:
            connection = sqlite3.connect(
                str(self._index_path),
                timeout=30.0,
                check_same_thread=False,
            )
        except sqlite3.Error as error:
            raise StorageFailure(
                f"Failed to open index at {self._index_path}: {error}. "
                "Check the path and file permissions."
            ) from error
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        try:
            with self._writer:
                self._writer.execute("PRAGMA journal_mode=WAL")
                self._writer.executescript(_SCHEMA_SQL)
                for tag_key in TAG_FIELD_KEYS:
                    self._writer.execute(_tag_index_sql(tag_key))
        except sqlite3.Error as error:
            self._writer.close()
            raise StorageFailure(
                f"Failed to initialize index schema at {self._index_path}: {error}. "
                "The file may be corrupt or not a SQLite database."
            ) from error

    def _require_writer(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageFailure(
                f"Record store at {self._index_path} is closed. Open a new store to continue."
            )
        return self._writer

    def _reader(self) -> sqlite3.Connection:
        with self._readers_lock:
            if self._closed:
                raise StorageFailure(
                    f"Record store at {self._index_path} is closed. Open a new store to continue."
                )
            self._release_dead_readers()
            current_thread = threading.current_thread()
            connection = self._reader_connections.get(current_thread)
            if connection is None:
                connection = self._connect()
                self._reader_connections[current_thread] = connection
            return connection

    def _release_dead_readers(self) -> None:
        dead_threads = [thread for thread in self._reader_connections if not thread.is_alive()]
        for thread in dead_threads:
            self._reader_connections.pop(thread).close()
