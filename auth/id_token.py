from __future__ import annotations

import json
import time
from typing import Any, Callable

import httpx
import jwt  # PyJWT

from auth.errors import ProviderAPIError

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
JWKS_CACHE_SECONDS = 3600


class JwksCache:
    """Signing keys fetched from a JWKS endpoint, cached for an hour."""

    def __init__(
        self,
        url: str = GOOGLE_JWKS_URL,
        *,
        ttl_seconds: int = JWKS_CACHE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.url = url
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._keys: dict[str, dict[str, Any]] = {}
        self._fetched_at = 0.0

    def _is_fresh(self) -> bool:
        return bool(self._keys) and self._clock() - self._fetched_at < self.ttl_seconds

    async def _refresh(self, client: httpx.AsyncClient, timeout: float) -> None:
        try:
            response = await client.get(self.url, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as error:
            raise ProviderAPIError(f"Could not fetch signing keys: {type(error).__name__}") from error

        keys = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(keys, list):
            raise ProviderAPIError("Invalid JWKS keys.")

        self._keys = {
            str(key["kid"]): key for key in keys if isinstance(key, dict) and key.get("kid")
        }
        self._fetched_at = self._clock()

    async def get_key(self, kid: str, client: httpx.AsyncClient, *, timeout: float) -> dict[str, Any]:
        if not self._is_fresh():
            await self._refresh(client, timeout)
        jwk = self._keys.get(kid)
        if jwk is None:
            # Keys rotate; one refetch before giving up on an unknown kid.
            await self._refresh(client, timeout)
            jwk = self._keys.get(kid)
        if jwk is None:
            raise ProviderAPIError("Unknown signing key (kid).")
        return jwk


async def verify_id_token(
    id_token: str,
    *,
    client_id: str,
    jwks: JwksCache,
    client: httpx.AsyncClient,
    timeout: float,
    issuers: tuple[str, ...] = GOOGLE_ISSUERS,
) -> dict[str, Any]:
    """
    Validate a signed OpenID Connect ID token and return its claims.

    - Verifies the RS256 signature with the provider's published keys
    - Requires and checks exp, iat, aud and iss
    """
    try:
        header = jwt.get_unverified_header(id_token)
    except jwt.PyJWTError as error:
        raise ProviderAPIError("Malformed ID token.") from error

    kid = str(header.get("kid") or "")
    if not kid:
        raise ProviderAPIError("ID token missing kid.")

    jwk = await jwks.get_key(kid, client, timeout=timeout)
    try:
        key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        claims = jwt.decode(
            id_token,
            key=key,
            algorithms=["RS256"],
            audience=client_id,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
    except jwt.PyJWTError as error:
        raise ProviderAPIError(f"ID token rejected: {type(error).__name__}") from error

    if claims.get("iss") not in issuers:
        raise ProviderAPIError("ID token issuer mismatch.")
    return claims
