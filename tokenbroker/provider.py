"""Provider token endpoint client.

The broker only depends on the :class:`ProviderClient` protocol.
:class:`HttpProviderClient` is the production implementation that talks to an
OAuth2 token endpoint with form-encoded POSTs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import ValidationError

from .config import ProviderConfig
from .errors import ProviderError, ProviderTimeout
from .models import TokenResponse

logger = logging.getLogger(__name__)


class ProviderClient(Protocol):
    """Contract for exchanging and refreshing OAuth2 tokens."""

    async def exchange(self, code: str, redirect_uri: str) -> TokenResponse:
        """Trade an authorization code for tokens."""

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Obtain a new access token from ``refresh_token``."""


class HttpProviderClient:
    """OAuth2 token endpoint client built on ``httpx``."""

    def __init__(
        self,
        config: ProviderConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def __aenter__(self) -> "HttpProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def exchange(self, code: str, redirect_uri: str) -> TokenResponse:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
            }
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _token_request(self, data: Dict[str, str]) -> TokenResponse:
        form = {
            **data,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        try:
            response = await self._client.post(
                self.config.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(
                f"{data['grant_type']} request timed out after {self.config.timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(None, str(exc)) from exc

        body = _response_body(response)
        if not response.is_success:
            logger.debug(
                f"Token endpoint rejected {data['grant_type']}: {response.status_code}"
            )
            raise ProviderError(response.status_code, body)

        if not isinstance(body, dict):
            raise ProviderError(response.status_code, body)
        try:
            return TokenResponse.model_validate(body)
        except ValidationError as exc:
            raise ProviderError(
                response.status_code, {"error": "invalid_response", "keys": list(body)}
            ) from exc


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"raw_response": response.text[:500]}
