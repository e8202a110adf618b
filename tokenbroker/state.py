"""Typed ``state`` value carried through the OAuth redirect round-trip.

The login route encodes an :class:`AuthState` into the authorization URL and
the callback route decodes it to learn which identity the returned code
belongs to.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
import time
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidState


class AuthState(BaseModel):
    identity: str = Field(..., min_length=1)
    nonce: str = Field(default_factory=lambda: secrets.token_urlsafe(16), min_length=1)
    issued_at: int = Field(default_factory=lambda: int(time.time()))

    def encode(self) -> str:
        """Serialize to a URL-safe token without padding."""
        raw = self.model_dump_json().encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    @classmethod
    def decode(
        cls,
        value: Optional[str],
        max_age: Optional[int] = None,
        now: Optional[int] = None,
    ) -> "AuthState":
        """Parse and validate a state token.

        Raises:
            InvalidState: if ``value`` is missing, not decodable, lacks a
                required field, or is older than ``max_age`` seconds.
        """
        if not value:
            raise InvalidState("Missing state parameter")
        padded = value + "=" * (-len(value) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise InvalidState("State parameter is not decodable") from exc
        if not isinstance(data, dict):
            raise InvalidState("State parameter is not an object")
        missing = [name for name in ("identity", "nonce", "issued_at") if name not in data]
        if missing:
            raise InvalidState(
                f"State parameter is missing {', '.join(missing)}",
                {"missing": missing},
            )
        try:
            state = cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidState(
                "State parameter is malformed",
                {"fields": [".".join(str(p) for p in err["loc"]) for err in exc.errors()]},
            ) from exc

        if max_age is not None:
            now = int(time.time()) if now is None else now
            if now - state.issued_at > max_age:
                raise InvalidState("State parameter has expired", {"issued_at": state.issued_at})
        return state
