from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from auth.errors import InvalidStateError, MissingCodeError
from auth.models import StateBundle

STATE_TTL_SECONDS = 600


def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    while True:
        verifier = secrets.token_urlsafe(64)
        if 43 <= len(verifier) <= 128:
            return verifier


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def _same(supplied: str, stored: str) -> bool:
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


class StateGuard:
    """Issues and checks the anti-CSRF state (and PKCE verifier) for a login."""

    def __init__(self, *, ttl_seconds: int = STATE_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds

    def issue(self, requires_pkce: bool) -> StateBundle:
        verifier = generate_code_verifier() if requires_pkce else None
        return StateBundle(state=generate_state(), verifier=verifier)

    def verify(
        self,
        supplied_state: str | None,
        stored_state: str | None,
        supplied_code: str | None,
        stored_verifier: str | None = None,
        *,
        requires_pkce: bool = False,
    ) -> str:
        """Return the authorization code once every check passes.

        Comparison is exact. Any failed check raises; there is no partial result.
        """
        if not supplied_code:
            raise MissingCodeError()
        if not supplied_state or not stored_state:
            raise InvalidStateError()
        if not _same(supplied_state, stored_state):
            raise InvalidStateError()
        if requires_pkce and not stored_verifier:
            raise InvalidStateError("Missing PKCE code verifier.")
        return supplied_code
