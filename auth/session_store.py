from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, replace

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from auth.db import sessions
from auth.models import Session


class SessionStore(ABC):
    @abstractmethod
    async def insert(self, session: Session) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, token_hash: str) -> Session | None:
        raise NotImplementedError

    @abstractmethod
    async def extend(
        self,
        token_hash: str,
        *,
        expected_expires_at: float,
        new_expires_at: float,
    ) -> bool:
        """Move expiry forward only if nobody else has since the row was read."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, token_hash: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_expired(self, now: float) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def insert(self, session: Session) -> None:
        self._sessions[session.token_hash] = replace(session)

    async def get(self, token_hash: str) -> Session | None:
        session = self._sessions.get(token_hash)
        return replace(session) if session is not None else None

    async def extend(
        self,
        token_hash: str,
        *,
        expected_expires_at: float,
        new_expires_at: float,
    ) -> bool:
        session = self._sessions.get(token_hash)
        if session is None or session.expires_at != expected_expires_at:
            return False
        session.expires_at = new_expires_at
        return True

    async def delete(self, token_hash: str) -> None:
        self._sessions.pop(token_hash, None)

    async def delete_expired(self, now: float) -> int:
        expired = [key for key, session in self._sessions.items() if session.expires_at <= now]
        for key in expired:
            del self._sessions[key]
        return len(expired)


class SqlSessionStore(SessionStore):
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def insert(self, session: Session) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(insert(sessions).values(**asdict(session)))

    async def get(self, token_hash: str) -> Session | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                select(sessions).where(sessions.c.token_hash == token_hash)
            )
            row = result.mappings().first()
        return Session(**dict(row)) if row is not None else None

    async def extend(
        self,
        token_hash: str,
        *,
        expected_expires_at: float,
        new_expires_at: float,
    ) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(sessions)
                .where(
                    sessions.c.token_hash == token_hash,
                    sessions.c.expires_at == expected_expires_at,
                )
                .values(expires_at=new_expires_at)
            )
        return result.rowcount == 1

    async def delete(self, token_hash: str) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(delete(sessions).where(sessions.c.token_hash == token_hash))

    async def delete_expired(self, now: float) -> int:
        async with self._engine.begin() as conn:
            result = await conn.execute(delete(sessions).where(sessions.c.expires_at <= now))
        return result.rowcount
