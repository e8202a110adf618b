"""Credential lifecycle orchestration."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Tuple

from .config import BrokerConfig
from .errors import (
    ExchangeError,
    NotConnected,
    ProviderError,
    ProviderTimeout,
    RefreshError,
    RefreshTimeout,
)
from .expiry import ExpiryPolicy
from .models import ConnectionStatus, TokenRecord, TokenResponse
from .provider import ProviderClient
from .storage import CredentialStore

logger = logging.getLogger(__name__)


class TokenBroker:
    """Exchanges, stores and refreshes OAuth2 credentials per identity.

    Refresh is single-flight per identity: while one refresh for an identity
    is running, further ``ensure_fresh`` calls for that identity await the same
    task instead of sending another request with the same refresh token.
    Identities never share a lock.
    """

    def __init__(
        self,
        store: CredentialStore,
        provider: ProviderClient,
        policy: Optional[ExpiryPolicy] = None,
        redirect_uri: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.provider = provider
        self.policy = policy or ExpiryPolicy()
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._inflight: Dict[str, asyncio.Task[TokenRecord]] = {}
        # last rejected record per identity; a refresh token the provider
        # refused is not sent again
        self._rejected: Dict[str, Tuple[TokenRecord, RefreshError]] = {}

    @classmethod
    def from_config(
        cls,
        config: BrokerConfig,
        store: CredentialStore,
        provider: ProviderClient,
    ) -> "TokenBroker":
        policy = ExpiryPolicy(
            skew=config.expiry.skew_seconds, default_ttl=config.expiry.default_ttl
        )
        return cls(
            store,
            provider,
            policy=policy,
            redirect_uri=config.provider.redirect_uri,
            timeout=config.provider.timeout,
        )

    # ------------------------------------------------------------------
    async def exchange_code(
        self, identity: str, code: str, redirect_uri: Optional[str] = None
    ) -> TokenRecord:
        """Trade an authorization code for tokens and store them for ``identity``.

        Raises:
            ExchangeError: the provider rejected the code or did not answer.
                Nothing is written in that case.
        """
        issued_at = self.policy.now()
        try:
            response = await asyncio.wait_for(
                self.provider.exchange(code, redirect_uri or self.redirect_uri),
                timeout=self.timeout,
            )
        except ProviderError as exc:
            logger.warning(f"Code exchange rejected for {identity}: {exc.status}")
            raise ExchangeError(
                "Authorization code exchange was rejected", exc.diagnostic
            ) from exc
        except (ProviderTimeout, asyncio.TimeoutError) as exc:
            logger.warning(f"Code exchange timed out for {identity}")
            raise ExchangeError(
                "Authorization code exchange timed out",
                {"status": None, "body": "timeout"},
            ) from exc

        previous = await self.store.get(identity)
        record = self._build_record(identity, response, issued_at, previous)
        await self.store.upsert(identity, record)
        self._rejected.pop(identity, None)
        logger.info(f"Stored credentials for {identity}, expires_at={record.expires_at}")
        return record

    async def ensure_fresh(self, identity: str) -> TokenRecord:
        """Return a record that is fresh under the expiry policy.

        Raises:
            NotConnected: nothing is stored for ``identity``.
            RefreshError: the provider rejected the refresh token.
            RefreshTimeout: the refresh did not complete; retrying is safe.
        """
        record = await self.store.get(identity)
        if record is None:
            raise NotConnected(identity)
        if self.policy.is_fresh(record):
            return record

        task = self._inflight.get(identity)
        if task is None:
            task = asyncio.create_task(self._refresh_once(identity))
            task.add_done_callback(_retrieve_exception)
            self._inflight[identity] = task
        else:
            logger.debug(f"Joining in-flight refresh for {identity}")
        # a cancelled waiter must not cancel the refresh other callers share
        return await asyncio.shield(task)

    async def revoke(self, identity: str) -> None:
        await self.store.delete(identity)
        self._rejected.pop(identity, None)
        logger.info(f"Revoked credentials for {identity}")

    async def status(self, identity: str) -> ConnectionStatus:
        record = await self.store.get(identity)
        if record is None:
            return ConnectionStatus(connected=False, expires_at=None)
        return ConnectionStatus(connected=True, expires_at=record.expires_at)

    # ------------------------------------------------------------------
    async def _refresh_once(self, identity: str) -> TokenRecord:
        try:
            return await self._refresh(identity)
        finally:
            if self._inflight.get(identity) is asyncio.current_task():
                del self._inflight[identity]

    async def _refresh(self, identity: str) -> TokenRecord:
        # A caller may have read the stale record just before a previous
        # refresh finished; re-check so the rotated token is not reused.
        record = await self.store.get(identity)
        if record is None:
            raise NotConnected(identity)
        if self.policy.is_fresh(record):
            return record
        if not record.refresh_token:
            logger.warning(f"No refresh token stored for {identity}")
            raise RefreshError(
                "No refresh token stored; re-authorization required",
                {"identity": identity},
            )
        rejected = self._rejected.get(identity)
        if rejected is not None and rejected[0] == record:
            logger.debug(f"Refresh token for {identity} was already rejected")
            raise rejected[1]

        issued_at = self.policy.now()
        try:
            response = await asyncio.wait_for(
                self.provider.refresh(record.refresh_token), timeout=self.timeout
            )
        except (ProviderTimeout, asyncio.TimeoutError) as exc:
            logger.warning(f"Refresh timed out for {identity}")
            raise RefreshTimeout(
                f"Refresh did not complete within {self.timeout}s",
                {"identity": identity},
            ) from exc
        except ProviderError as exc:
            if exc.status is None or exc.status >= 500:
                logger.warning(f"Refresh unavailable for {identity}: {exc.status}")
                raise RefreshTimeout(
                    "Provider unavailable during refresh", exc.diagnostic
                ) from exc
            logger.warning(f"Refresh rejected for {identity}: {exc.status}")
            error = RefreshError("Refresh token was rejected", exc.diagnostic)
            self._rejected[identity] = (record, error)
            raise error from exc

        current = await self.store.get(identity)
        if current is None:
            # revoked while the refresh was in flight
            raise NotConnected(identity)
        refreshed = self._build_record(identity, response, issued_at, current)
        await self.store.upsert(identity, refreshed)
        self._rejected.pop(identity, None)
        logger.info(f"Refreshed credentials for {identity}, expires_at={refreshed.expires_at}")
        return refreshed

    def _build_record(
        self,
        identity: str,
        response: TokenResponse,
        issued_at: int,
        previous: Optional[TokenRecord],
    ) -> TokenRecord:
        refresh_token = response.refresh_token or (
            previous.refresh_token if previous else ""
        )
        if response.scope is not None:
            scope = response.scope
        else:
            scope = previous.scope if previous else ""
        return TokenRecord(
            identity=identity,
            access_token=response.access_token,
            refresh_token=refresh_token,
            scope=scope,
            expires_at=self.policy.compute_expiry(issued_at, response.expires_in),
        )


def _retrieve_exception(task: asyncio.Task) -> None:
    # every waiter may have been cancelled; the failure is still observed here
    if not task.cancelled():
        task.exception()
