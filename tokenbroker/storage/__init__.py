"""Credential storage backends."""

from __future__ import annotations

import os
from typing import Optional

from ..config import BrokerConfig, load_config
from .inmemory import InMemoryCredentialStore
from .repository import CredentialStore
from .sqlite import SQLiteCredentialStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresCredentialStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresCredentialStore = None  # type: ignore


def get_store(
    database_url: Optional[str] = None, config: Optional[BrokerConfig] = None
) -> CredentialStore:
    """Factory function to build a credential store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``TOKENBROKER_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.

    Each call builds a new store; the caller owns it and is responsible for
    ``open()``/``close()``.
    """

    if database_url is None:
        config = config or load_config()
        database_url = (
            os.getenv("TOKENBROKER_DATABASE_URL")
            or os.getenv("DATABASE_URL")
            or config.database_url
        )

    if not database_url:
        return InMemoryCredentialStore()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteCredentialStore(path)
    if database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresCredentialStore is None:
            raise RuntimeError("Postgres support not available")
        return PostgresCredentialStore(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "SQLiteCredentialStore",
    "PostgresCredentialStore",
    "get_store",
]
