"""In-memory implementation of the credential store."""

from __future__ import annotations

from typing import Dict

from ..models import TokenRecord


class InMemoryCredentialStore:
    """Store credentials in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._records: Dict[str, TokenRecord] = {}

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "InMemoryCredentialStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    async def upsert(self, identity: str, record: TokenRecord) -> None:
        if record.identity != identity:
            record = record.model_copy(update={"identity": identity})
        self._records[identity] = record

    async def get(self, identity: str) -> TokenRecord | None:
        return self._records.get(identity)

    async def delete(self, identity: str) -> None:
        self._records.pop(identity, None)

    async def list_records(self) -> list[TokenRecord]:
        return list(self._records.values())
