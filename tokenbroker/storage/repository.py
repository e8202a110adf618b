"""Store abstraction for credential persistence."""

from __future__ import annotations

from typing import Protocol

from ..models import TokenRecord


class CredentialStore(Protocol):
    """Protocol for credential persistence backends.

    Implementations keep at most one record per identity. ``upsert`` replaces
    the whole record in one step so readers never see a mix of old and new
    fields.
    """

    async def open(self) -> None:
        """Acquire connections and ensure the schema exists."""

    async def close(self) -> None:
        """Release connections."""

    async def upsert(self, identity: str, record: TokenRecord) -> None:
        """Insert or replace the record for ``identity``."""

    async def get(self, identity: str) -> TokenRecord | None:
        """Return the record for ``identity`` or ``None``."""

    async def delete(self, identity: str) -> None:
        """Remove the record for ``identity`` if present."""

    async def list_records(self) -> list[TokenRecord]:
        """Return every stored record."""
