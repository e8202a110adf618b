"""tokenbroker: OAuth2 credential broker for chat integrations."""

from .broker import TokenBroker
from .config import BrokerConfig, load_config
from .errors import (
    BrokerError,
    ErrorKind,
    ExchangeError,
    InvalidState,
    NotConnected,
    RefreshError,
    RefreshTimeout,
    StorageError,
)
from .expiry import ExpiryPolicy
from .models import ConnectionStatus, TokenRecord, TokenResponse
from .provider import HttpProviderClient, ProviderClient
from .state import AuthState
from .storage import CredentialStore, get_store

__version__ = "0.1.0"
__all__ = [
    "AuthState",
    "BrokerConfig",
    "BrokerError",
    "ConnectionStatus",
    "CredentialStore",
    "ErrorKind",
    "ExchangeError",
    "ExpiryPolicy",
    "HttpProviderClient",
    "InvalidState",
    "NotConnected",
    "ProviderClient",
    "RefreshError",
    "RefreshTimeout",
    "StorageError",
    "TokenBroker",
    "TokenRecord",
    "TokenResponse",
    "get_store",
    "load_config",
]
