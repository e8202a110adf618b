"""SQLite implementation of the credential store."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..errors import StorageError
from ..models import TokenRecord

logger = logging.getLogger(__name__)

_UPSERT = """
INSERT INTO tokens (identity, access_token, refresh_token, scope, expires_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(identity) DO UPDATE SET
    access_token = excluded.access_token,
    refresh_token = excluded.refresh_token,
    scope = excluded.scope,
    expires_at = excluded.expires_at
"""

_COLUMNS = "identity, access_token, refresh_token, scope, expires_at"


class SQLiteCredentialStore:
    """Persist credentials using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    async def __aenter__(self) -> "SQLiteCredentialStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Connection management
    async def open(self) -> None:
        await asyncio.to_thread(self._open)

    def _open(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tokens (
                        identity TEXT PRIMARY KEY,
                        access_token TEXT NOT NULL,
                        refresh_token TEXT NOT NULL DEFAULT '',
                        scope TEXT NOT NULL DEFAULT '',
                        expires_at INTEGER NOT NULL
                    )
                    """
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise StorageError(
                    f"Cannot open credential database {self.db_path}: {exc}"
                ) from exc
            self._conn = conn
        logger.debug(f"Opened credential store at {self.db_path}")
        return conn

    async def close(self) -> None:
        await asyncio.to_thread(self._close)

    def _close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ------------------------------------------------------------------
    # Helper methods
    def _connection(self) -> sqlite3.Connection:
        conn = self._conn
        if conn is None:
            conn = self._open()
        return conn

    def _execute(self, query: str, *params: Any) -> None:
        conn = self._connection()
        with self._lock:
            try:
                conn.execute(query, params)
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StorageError(f"Credential write failed: {exc}") from exc

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        conn = self._connection()
        with self._lock:
            try:
                return conn.execute(query, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Credential read failed: {exc}") from exc

    @staticmethod
    def _to_record(row: sqlite3.Row) -> TokenRecord:
        return TokenRecord(
            identity=row["identity"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            scope=row["scope"],
            expires_at=row["expires_at"],
        )

    # ------------------------------------------------------------------
    # Store API
    async def upsert(self, identity: str, record: TokenRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            _UPSERT,
            identity,
            record.access_token,
            record.refresh_token,
            record.scope,
            record.expires_at,
        )

    async def get(self, identity: str) -> TokenRecord | None:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM tokens WHERE identity = ?",
            identity,
        )
        return self._to_record(rows[0]) if rows else None

    async def delete(self, identity: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM tokens WHERE identity = ?", identity
        )

    async def list_records(self) -> list[TokenRecord]:
        rows = await asyncio.to_thread(
            self._fetchall, f"SELECT {_COLUMNS} FROM tokens ORDER BY identity"
        )
        return [self._to_record(r) for r in rows]
