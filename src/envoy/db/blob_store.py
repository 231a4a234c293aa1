"""Asynchronous blob store for uploaded file payloads.

One record per file source, keyed by the descriptor id:
``{id, name, mime_type, data, date}``. Every call runs on a worker thread via
``asyncio.to_thread`` and any ``sqlite3.Error`` surfaces as StoreUnavailable.
Each write is a single transaction, so readers never observe a half-written
record.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from envoy.db.connection import Database
from envoy.db.migrations import run_migrations
from envoy.db.models import StoredBlob
from envoy.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BlobStore:
    """Versioned, transactional key-value store for StoredBlob records.

    Usage::

        async with BlobStore(data_dir / DB_NAME) as store:
            await store.put(blob)
            blob = await store.get(blob.id)
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db = Database(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self.version = 0

    @property
    def db_path(self) -> Path:
        return self._db.db_path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> BlobStore:
        """Open the database and create the files table on first use (idempotent)."""
        if self._conn is not None:
            return self
        try:
            self._conn, self.version = await asyncio.to_thread(self._open_sync)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Failed to open blob store at %s", self.db_path, exc_info=True)
            raise StoreUnavailable(f"Blob store unavailable: {exc}") from exc
        return self

    def _open_sync(self) -> tuple[sqlite3.Connection, int]:
        conn = self._db.connect()
        try:
            version = run_migrations(conn)
        except sqlite3.Error:
            conn.close()
            raise
        return conn, version

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)

    async def __aenter__(self) -> BlobStore:
        return await self.open()

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def put(self, blob: StoredBlob) -> None:
        """Insert or replace the record for ``blob.id``."""
        await self._run(
            self._execute_write,
            """
            INSERT INTO files (id, name, mime_type, data, date)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                mime_type = excluded.mime_type,
                data = excluded.data,
                date = excluded.date
            """,
            (blob.id, blob.name, blob.mime_type, blob.data, blob.date),
        )

    async def get(self, blob_id: str) -> StoredBlob | None:
        """Return the record for *blob_id*, or None if absent."""
        rows = await self._run(
            self._execute_read,
            "SELECT id, name, mime_type, data, date FROM files WHERE id = ?",
            (blob_id,),
        )
        return _row_to_blob(rows[0]) if rows else None

    async def get_all(self) -> list[StoredBlob]:
        """Return every stored record. Order is unspecified."""
        rows = await self._run(
            self._execute_read,
            "SELECT id, name, mime_type, data, date FROM files",
            (),
        )
        return [_row_to_blob(r) for r in rows]

    async def delete(self, blob_id: str) -> None:
        """Delete the record for *blob_id*. Deleting an absent key is a no-op."""
        await self._run(
            self._execute_write, "DELETE FROM files WHERE id = ?", (blob_id,)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        if self._conn is None:
            await self.open()
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.warning("Blob store transaction aborted: %s", exc)
            raise StoreUnavailable(f"Blob store transaction aborted: {exc}") from exc

    def _execute_write(self, sql: str, params: tuple) -> None:
        conn = self._require_conn()
        with self._lock:
            try:
                conn.execute(sql, params)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

    def _execute_read(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        conn = self._require_conn()
        with self._lock:
            return conn.execute(sql, params).fetchall()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("blob store is closed")
        return self._conn


def _row_to_blob(row: sqlite3.Row) -> StoredBlob:
    return StoredBlob(
        id=row["id"],
        name=row["name"],
        mime_type=row["mime_type"],
        data=row["data"],
        date=row["date"],
    )
