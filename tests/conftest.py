import asyncio
from typing import Any, Dict, List, Tuple, Union

import pytest

from tokenbroker.broker import TokenBroker
from tokenbroker.expiry import ExpiryPolicy
from tokenbroker.models import TokenRecord, TokenResponse
from tokenbroker.storage import InMemoryCredentialStore

NOW = 1_700_000_000

Outcome = Union[Dict[str, Any], Exception]


class FakeProvider:
    """Provider double recording calls and replaying canned outcomes."""

    def __init__(self) -> None:
        self.exchange_calls: List[Tuple[str, str]] = []
        self.refresh_calls: List[str] = []
        self.exchange_outcome: Outcome = {
            "access_token": "A1",
            "refresh_token": "R1",
            "expires_in": 3600,
        }
        self.refresh_outcome: Outcome = {"access_token": "A2", "expires_in": 3600}
        self.delay = 0.0

    async def _reply(self, outcome: Outcome) -> TokenResponse:
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(outcome, Exception):
            raise outcome
        return TokenResponse(**outcome)

    async def exchange(self, code: str, redirect_uri: str) -> TokenResponse:
        self.exchange_calls.append((code, redirect_uri))
        return await self._reply(self.exchange_outcome)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        self.refresh_calls.append(refresh_token)
        return await self._reply(self.refresh_outcome)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def policy() -> ExpiryPolicy:
    return ExpiryPolicy(clock=lambda: NOW)


@pytest.fixture
def broker(store, provider, policy) -> TokenBroker:
    return TokenBroker(store, provider, policy=policy, redirect_uri="https://app.test/cb")


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def make_record():
    def _make(
        identity: str = "u1", expires_in: int = 3600, refresh_token: str = "R1"
    ) -> TokenRecord:
        return TokenRecord(
            identity=identity,
            access_token="A1",
            refresh_token=refresh_token,
            scope="notes.read",
            expires_at=NOW + expires_in,
        )

    return _make
