"""PostgreSQL implementation of the credential store."""

from __future__ import annotations

import asyncio

import asyncpg

from ..errors import StorageError
from ..models import TokenRecord

_COLUMNS = "identity, access_token, refresh_token, scope, expires_at"

# asyncpg.InterfaceError (closed connection, protocol misuse) is not a PostgresError
_DB_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)


class PostgresCredentialStore:
    """Persist credentials using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def __aenter__(self) -> "PostgresCredentialStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        conn = await self._connect()
        await conn.close()

    async def close(self) -> None:
        pass

    async def _connect(self) -> asyncpg.Connection:
        try:
            conn = await asyncpg.connect(self._dsn)
        except _DB_ERRORS as exc:
            raise StorageError(f"Credential database unavailable: {exc}") from exc
        if not self._initialized:
            try:
                await self._ensure_schema(conn)
            except _DB_ERRORS as exc:
                await conn.close()
                raise StorageError(f"Credential schema setup failed: {exc}") from exc
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tokens (
                identity TEXT PRIMARY KEY,
                access_token TEXT NOT NULL,
                refresh_token TEXT NOT NULL DEFAULT '',
                scope TEXT NOT NULL DEFAULT '',
                expires_at BIGINT NOT NULL
            )
            """
        )

    @staticmethod
    def _to_record(row: asyncpg.Record) -> TokenRecord:
        return TokenRecord(
            identity=row["identity"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            scope=row["scope"],
            expires_at=row["expires_at"],
        )

    # ------------------------------------------------------------------
    async def upsert(self, identity: str, record: TokenRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO tokens (identity, access_token, refresh_token, scope, expires_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (identity) DO UPDATE SET
                    access_token = EXCLUDED.access_token,
                    refresh_token = EXCLUDED.refresh_token,
                    scope = EXCLUDED.scope,
                    expires_at = EXCLUDED.expires_at
                """,
                identity,
                record.access_token,
                record.refresh_token,
                record.scope,
                record.expires_at,
            )
        except _DB_ERRORS as exc:
            raise StorageError(f"Credential write failed: {exc}") from exc
        finally:
            await conn.close()

    async def get(self, identity: str) -> TokenRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM tokens WHERE identity = $1", identity
            )
        except _DB_ERRORS as exc:
            raise StorageError(f"Credential read failed: {exc}") from exc
        finally:
            await conn.close()
        return self._to_record(row) if row else None

    async def delete(self, identity: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute("DELETE FROM tokens WHERE identity = $1", identity)
        except _DB_ERRORS as exc:
            raise StorageError(f"Credential write failed: {exc}") from exc
        finally:
            await conn.close()

    async def list_records(self) -> list[TokenRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(f"SELECT {_COLUMNS} FROM tokens ORDER BY identity")
        except _DB_ERRORS as exc:
            raise StorageError(f"Credential read failed: {exc}") from exc
        finally:
            await conn.close()
        return [self._to_record(r) for r in rows]
