from __future__ import annotations

import hashlib
import secrets
import time
from typing import Callable

from auth.cookies import SESSION_COOKIE, CookieDirective
from auth.errors import Unauthorized
from auth.models import Session, SessionValidation
from auth.session_store import SessionStore
from auth.user_store import UserStore
from authgate.constants import LOGGER

SESSION_TTL_SECONDS = 60 * 60 * 24 * 30


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionManager:
    """Server-side sessions keyed by the SHA-256 of a bearer token.

    The plain token only ever lives in the client's cookie. Validation slides
    the expiry forward once less than half of the lifetime remains.
    """

    def __init__(
        self,
        store: SessionStore,
        users: UserStore,
        *,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        cookie_secure: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.users = users
        self.ttl_seconds = ttl_seconds
        self.cookie_secure = cookie_secure
        self._clock = clock

    def generate_token(self) -> str:
        return generate_session_token()

    async def create(self, token: str, user_id: str) -> Session:
        session = Session(
            token_hash=hash_session_token(token),
            user_id=user_id,
            expires_at=self._clock() + self.ttl_seconds,
        )
        await self.store.insert(session)
        return session

    async def validate(self, token: str | None) -> SessionValidation:
        if not token:
            raise Unauthorized()

        token_hash = hash_session_token(token)
        session = await self.store.get(token_hash)
        if session is None:
            raise Unauthorized()

        now = self._clock()
        if now >= session.expires_at:
            await self.store.delete(token_hash)
            raise Unauthorized()

        user = await self.users.get(session.user_id)
        if user is None:
            await self.store.delete(token_hash)
            raise Unauthorized()

        renewed = False
        if session.expires_at - now < self.ttl_seconds / 2:
            new_expires_at = now + self.ttl_seconds
            renewed = await self.store.extend(
                token_hash,
                expected_expires_at=session.expires_at,
                new_expires_at=new_expires_at,
            )
            if renewed:
                session.expires_at = new_expires_at
            else:
                # Another request renewed (or removed) it first.
                current = await self.store.get(token_hash)
                if current is None:
                    raise Unauthorized()
                session = current
                renewed = True

        return SessionValidation(user=user, session=session, renewed=renewed)

    async def invalidate(self, token: str) -> None:
        await self.store.delete(hash_session_token(token))

    async def purge_expired(self) -> int:
        removed = await self.store.delete_expired(self._clock())
        if removed:
            LOGGER.info("Purged %s expired sessions", removed)
        return removed

    def cookie_directive(self, token: str, expires_at: float) -> CookieDirective:
        max_age = max(0, int(expires_at - self._clock()))
        return CookieDirective(
            key=SESSION_COOKIE,
            value=token,
            max_age=max_age,
            secure=self.cookie_secure,
        )
