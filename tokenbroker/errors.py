"""Error kinds surfaced by the token broker.

Every failure that reaches the calling layer is a :class:`BrokerError`
subclass carrying an :class:`ErrorKind`. Route layers map ``kind`` to their
own transport representation (HTTP status, chat message, ...) instead of
inspecting messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Stable identifiers for broker failures."""

    NOT_CONNECTED = "not_connected"
    EXCHANGE_FAILED = "exchange_failed"
    REFRESH_FAILED = "refresh_failed"
    REFRESH_TIMEOUT = "refresh_timeout"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    INVALID_STATE = "invalid_state"


class BrokerError(Exception):
    """Base class for failures returned to the calling layer."""

    kind: ErrorKind
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class NotConnected(BrokerError):
    """No credential is stored for the identity; authorization is required."""

    kind = ErrorKind.NOT_CONNECTED

    def __init__(self, identity: str) -> None:
        super().__init__(f"No credentials stored for {identity!r}", {"identity": identity})
        self.identity = identity


class ExchangeError(BrokerError):
    """The provider rejected the authorization code exchange."""

    kind = ErrorKind.EXCHANGE_FAILED


class RefreshError(BrokerError):
    """The provider rejected the refresh token; re-authorization is required."""

    kind = ErrorKind.REFRESH_FAILED


class RefreshTimeout(BrokerError):
    """The refresh call timed out. Safe to retry ``ensure_fresh``."""

    kind = ErrorKind.REFRESH_TIMEOUT
    retryable = True


class StorageError(BrokerError):
    """The credential store could not be reached or written."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


class InvalidState(BrokerError):
    """The OAuth ``state`` value was missing, malformed or expired."""

    kind = ErrorKind.INVALID_STATE


class ProviderError(Exception):
    """Non-success response from the provider token endpoint.

    Raised by :class:`~tokenbroker.provider.ProviderClient` implementations and
    translated by the broker; it never reaches the calling layer directly.
    """

    def __init__(self, status: Optional[int], body: Any) -> None:
        super().__init__(f"Provider returned {status}: {body}")
        self.status = status
        self.body = body

    @property
    def diagnostic(self) -> Dict[str, Any]:
        return {"status": self.status, "body": self.body}


class ProviderTimeout(Exception):
    """The provider did not answer within the configured timeout."""


__all__ = [
    "ErrorKind",
    "BrokerError",
    "NotConnected",
    "ExchangeError",
    "RefreshError",
    "RefreshTimeout",
    "StorageError",
    "InvalidState",
    "ProviderError",
    "ProviderTimeout",
]
