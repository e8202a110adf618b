"""Token broker lifecycle tests."""

import asyncio

import pytest

from tokenbroker.broker import TokenBroker
from tokenbroker.errors import (
    ErrorKind,
    ExchangeError,
    NotConnected,
    ProviderError,
    ProviderTimeout,
    RefreshError,
    RefreshTimeout,
    StorageError,
)
from tokenbroker.storage import InMemoryCredentialStore


@pytest.mark.asyncio
async def test_ensure_fresh_without_record_is_not_connected(broker, provider):
    with pytest.raises(NotConnected) as exc_info:
        await broker.ensure_fresh("u1")
    assert exc_info.value.kind is ErrorKind.NOT_CONNECTED
    assert provider.refresh_calls == []


@pytest.mark.asyncio
async def test_exchange_code_stores_record_and_reports_status(broker, provider, store, now):
    record = await broker.exchange_code("u1", "code123")

    assert provider.exchange_calls == [("code123", "https://app.test/cb")]
    assert record.access_token == "A1"
    assert record.refresh_token == "R1"
    assert record.expires_at == now + 3600
    assert await store.get("u1") == record

    status = await broker.status("u1")
    assert status.connected is True
    assert status.expires_at == now + 3600


@pytest.mark.asyncio
async def test_exchange_code_uses_explicit_redirect_uri(broker, provider):
    await broker.exchange_code("u1", "code123", redirect_uri="https://other.test/cb")
    assert provider.exchange_calls == [("code123", "https://other.test/cb")]


@pytest.mark.asyncio
async def test_exchange_code_defaults_ttl_when_expires_in_missing(broker, provider, now):
    provider.exchange_outcome = {"access_token": "A1", "refresh_token": "R1"}
    record = await broker.exchange_code("u1", "code123")
    assert record.expires_at == now + 3600
    assert record.scope == ""


@pytest.mark.asyncio
async def test_exchange_rejection_writes_nothing(broker, provider, store):
    provider.exchange_outcome = ProviderError(400, {"error": "invalid_grant"})

    with pytest.raises(ExchangeError) as exc_info:
        await broker.exchange_code("u1", "expired-code")

    assert exc_info.value.details == {"status": 400, "body": {"error": "invalid_grant"}}
    assert await store.get("u1") is None
    assert (await broker.status("u1")).connected is False


@pytest.mark.asyncio
async def test_exchange_timeout_is_exchange_error(broker, provider, store):
    provider.exchange_outcome = ProviderTimeout("slow")
    with pytest.raises(ExchangeError):
        await broker.exchange_code("u1", "code123")
    assert await store.get("u1") is None


@pytest.mark.asyncio
async def test_reexchange_keeps_refresh_token_when_omitted(broker, provider, store, make_record):
    await store.upsert("u1", make_record())
    provider.exchange_outcome = {"access_token": "A9", "expires_in": 7200}

    record = await broker.exchange_code("u1", "code456")

    assert record.access_token == "A9"
    assert record.refresh_token == "R1"


@pytest.mark.asyncio
async def test_fresh_record_returned_without_provider_call(broker, provider, store, make_record):
    stored = make_record(expires_in=61)
    await store.upsert("u1", stored)

    assert await broker.ensure_fresh("u1") == stored
    assert provider.refresh_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("expires_in", [60, 30, 0, -600])
async def test_record_inside_skew_window_is_refreshed(
    broker, provider, store, make_record, expires_in
):
    await store.upsert("u1", make_record(expires_in=expires_in))
    await broker.ensure_fresh("u1")
    assert provider.refresh_calls == ["R1"]


@pytest.mark.asyncio
async def test_refresh_keeps_prior_refresh_token(broker, provider, store, make_record, now):
    await store.upsert("u1", make_record(expires_in=30))
    provider.refresh_outcome = {"access_token": "A2", "expires_in": 3600}

    record = await broker.ensure_fresh("u1")

    assert record.access_token == "A2"
    assert record.refresh_token == "R1"
    assert record.expires_at == now + 3600
    assert record.scope == "notes.read"
    assert await store.get("u1") == record


@pytest.mark.asyncio
async def test_refresh_stores_rotated_refresh_token(broker, provider, store, make_record):
    await store.upsert("u1", make_record(expires_in=30))
    provider.refresh_outcome = {"access_token": "A2", "refresh_token": "R2", "scope": "notes.write"}

    record = await broker.ensure_fresh("u1")

    assert record.refresh_token == "R2"
    assert record.scope == "notes.write"


@pytest.mark.asyncio
async def test_rejected_refresh_leaves_record_untouched(broker, provider, store, make_record, now):
    stored = make_record(expires_in=30)
    await store.upsert("u1", stored)
    provider.refresh_outcome = ProviderError(400, {"error": "invalid_grant"})

    with pytest.raises(RefreshError) as exc_info:
        await broker.ensure_fresh("u1")

    assert exc_info.value.retryable is False
    assert exc_info.value.details["body"] == {"error": "invalid_grant"}
    assert await store.get("u1") == stored
    status = await broker.status("u1")
    assert status.connected is True
    assert status.expires_at == now + 30


@pytest.mark.asyncio
async def test_refresh_timeout_is_retryable(broker, provider, store, make_record):
    stored = make_record(expires_in=30)
    await store.upsert("u1", stored)
    provider.refresh_outcome = ProviderTimeout("slow")

    with pytest.raises(RefreshTimeout) as exc_info:
        await broker.ensure_fresh("u1")

    assert exc_info.value.retryable is True
    assert await store.get("u1") == stored


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [None, 502])
async def test_unavailable_provider_is_treated_as_transient(
    broker, provider, store, make_record, status
):
    await store.upsert("u1", make_record(expires_in=30))
    provider.refresh_outcome = ProviderError(status, "upstream down")

    with pytest.raises(RefreshTimeout):
        await broker.ensure_fresh("u1")


@pytest.mark.asyncio
async def test_stale_record_without_refresh_token_needs_reauthorization(
    broker, provider, store, make_record
):
    await store.upsert("u1", make_record(expires_in=30, refresh_token=""))

    with pytest.raises(RefreshError):
        await broker.ensure_fresh("u1")
    assert provider.refresh_calls == []


@pytest.mark.asyncio
async def test_revoke_is_idempotent(broker, store, make_record):
    await store.upsert("u1", make_record())

    await broker.revoke("u1")
    await broker.revoke("u1")

    assert await store.get("u1") is None
    status = await broker.status("u1")
    assert status.connected is False
    assert status.expires_at is None


@pytest.mark.asyncio
async def test_status_never_refreshes(broker, provider, store, make_record):
    await store.upsert("u1", make_record(expires_in=-100))
    status = await broker.status("u1")
    assert status.connected is True
    assert provider.refresh_calls == []


class FailingWriteStore(InMemoryCredentialStore):
    """In-memory store whose writes fail as an unavailable medium would."""

    async def upsert(self, identity, record):
        raise StorageError("Credential write failed: disk full")


@pytest.mark.asyncio
async def test_storage_failure_during_exchange_reaches_caller(provider, policy):
    broker = TokenBroker(FailingWriteStore(), provider, policy=policy)

    with pytest.raises(StorageError) as exc_info:
        await broker.exchange_code("u1", "code123")

    assert exc_info.value.kind is ErrorKind.STORAGE_UNAVAILABLE
    assert provider.exchange_calls == [("code123", "")]


@pytest.mark.asyncio
async def test_storage_failure_during_refresh_reaches_every_caller(provider, policy, make_record):
    store = FailingWriteStore()
    await InMemoryCredentialStore.upsert(store, "u1", make_record(expires_in=30))
    broker = TokenBroker(store, provider, policy=policy)
    provider.delay = 0.01

    results = await asyncio.gather(
        broker.ensure_fresh("u1"), broker.ensure_fresh("u1"), return_exceptions=True
    )

    assert all(isinstance(r, StorageError) for r in results)
    assert provider.refresh_calls == ["R1"]
    assert broker._inflight == {}
    assert (await store.get("u1")).access_token == "A1"
