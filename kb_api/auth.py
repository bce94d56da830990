"""Caller identity for authenticated endpoints.

Token validation is delegated: ``SupabaseIdentityVerifier`` asks the hosted
auth service who a bearer token belongs to. ``StaticTokenVerifier`` maps
fixed tokens to caller ids for local development and tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import requests

from kb_api.errors import ServiceUnavailableError, UnauthorizedError

logger = logging.getLogger("kb_api.auth")


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the caller id for ``token`` or raise ``UnauthorizedError``."""
        ...


def bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.strip():
        raise UnauthorizedError(detail="Authorization header required")
    token = authorization.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if not token:
        raise UnauthorizedError(detail="Authorization header required")
    return token


class StaticTokenVerifier:
    def __init__(self, tokens: dict[str, str]) -> None:
        self.tokens = dict(tokens)

    async def verify(self, token: str) -> str:
        caller_id = self.tokens.get(token)
        if caller_id is None:
            raise UnauthorizedError(detail="Invalid or expired token")
        return caller_id


class SupabaseIdentityVerifier:
    def __init__(self, url: str, anon_key: str, timeout: float = 5.0) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout

    def _fetch_user(self, token: str) -> requests.Response:
        return requests.get(
            f"{self.url}/auth/v1/user",
            headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
            timeout=self.timeout,
        )

    async def verify(self, token: str) -> str:
        try:
            resp = await asyncio.to_thread(self._fetch_user, token)
        except requests.RequestException as e:
            logger.error("Identity service request failed: %s", e)
            raise ServiceUnavailableError(detail="Identity service unavailable") from e

        if resp.status_code != 200:
            logger.info("Token rejected by identity service (status=%d)", resp.status_code)
            raise UnauthorizedError(detail="Invalid or expired token")

        try:
            user = resp.json()
        except ValueError as e:
            raise UnauthorizedError(detail="Invalid or expired token") from e
        caller_id = user.get("id") if isinstance(user, dict) else None
        if not caller_id:
            raise UnauthorizedError(detail="Invalid or expired token")
        return str(caller_id)


async def authenticate(verifier: IdentityVerifier | None, authorization: str | None) -> str:
    """Resolve the caller id for an ``Authorization`` header value."""
    token = bearer_token(authorization)
    if verifier is None:
        raise ServiceUnavailableError(detail="Identity verification not configured")
    return await verifier.verify(token)
