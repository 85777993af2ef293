from __future__ import annotations

import secrets
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Iterator

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from auth.db import users
from auth.errors import DuplicateUserError
from auth.models import IdentityClaims, User
from authgate.constants import LOGGER

PROVIDER_ID_FIELDS = {
    "discord": "discord_id",
    "google": "google_id",
}
MAX_USERNAME_SUFFIX = 20


def provider_id_field(provider: str) -> str:
    try:
        return PROVIDER_ID_FIELDS[provider]
    except KeyError:
        raise ValueError(f"Unknown identity provider: {provider}") from None


def username_candidates(base: str) -> Iterator[str]:
    base = base or "user"
    yield base
    for suffix in range(2, MAX_USERNAME_SUFFIX + 1):
        yield f"{base}-{suffix}"
    yield f"{base}-{secrets.token_hex(4)}"


class UserStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    async def get_by_provider_id(self, provider: str, provider_user_id: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    async def username_taken(self, username: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, user: User) -> User:
        """Persist a new user; raise DuplicateUserError on any uniqueness violation."""
        raise NotImplementedError

    async def find_or_create(self, provider: str, claims: IdentityClaims) -> User:
        """Return the user bound to this provider id, creating it on first login.

        Keyed by provider id only, never by email. A concurrent first login for
        the same identity loses the insert and reads the winner's row instead.
        """
        field = provider_id_field(provider)
        existing = await self.get_by_provider_id(provider, claims.provider_user_id)
        if existing is not None:
            return existing

        for username in username_candidates(claims.username):
            if await self.username_taken(username):
                continue

            user = User(
                id=str(uuid.uuid4()),
                email=claims.email,
                username=username,
                display_name=claims.display_name,
                avatar_url=claims.avatar_url,
                created_at=time.time(),
            )
            setattr(user, field, claims.provider_user_id)
            try:
                created = await self.insert(user)
            except DuplicateUserError:
                existing = await self.get_by_provider_id(provider, claims.provider_user_id)
                if existing is not None:
                    LOGGER.info("Concurrent signup resolved to existing user provider=%s", provider)
                    return existing
                continue

            LOGGER.info("Created user id=%s provider=%s", created.id, provider)
            return created

        raise DuplicateUserError("Could not allocate a unique username.")


class MemoryUserStore(UserStore):
    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    async def get(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_by_provider_id(self, provider: str, provider_user_id: str) -> User | None:
        field = provider_id_field(provider)
        for user in self._users.values():
            if getattr(user, field) == provider_user_id:
                return user
        return None

    async def username_taken(self, username: str) -> bool:
        return any(user.username == username for user in self._users.values())

    async def insert(self, user: User) -> User:
        for existing in self._users.values():
            if existing.id == user.id or existing.username == user.username:
                raise DuplicateUserError("User already exists.")
            for field in PROVIDER_ID_FIELDS.values():
                value = getattr(user, field)
                if value is not None and getattr(existing, field) == value:
                    raise DuplicateUserError("User already exists.")
        self._users[user.id] = user
        return user


def _row_to_user(row) -> User | None:
    if row is None:
        return None
    return User(**dict(row))


class SqlUserStore(UserStore):
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, user_id: str) -> User | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(select(users).where(users.c.id == user_id))
            return _row_to_user(result.mappings().first())

    async def get_by_provider_id(self, provider: str, provider_user_id: str) -> User | None:
        column = users.c[provider_id_field(provider)]
        async with self._engine.connect() as conn:
            result = await conn.execute(select(users).where(column == provider_user_id))
            return _row_to_user(result.mappings().first())

    async def username_taken(self, username: str) -> bool:
        async with self._engine.connect() as conn:
            result = await conn.execute(select(users.c.id).where(users.c.username == username))
            return result.first() is not None

    async def insert(self, user: User) -> User:
        try:
            async with self._engine.begin() as conn:
                await conn.execute(insert(users).values(**asdict(user)))
        except IntegrityError as error:
            raise DuplicateUserError("User already exists.") from error
        return user
