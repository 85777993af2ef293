from __future__ import annotations

from sqlalchemy import Column, Float, ForeignKey, MetaData, String, Table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./authgate.db"

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(320), nullable=False, default=""),
    Column("username", String(64), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False, default=""),
    Column("avatar_url", String(1024), nullable=False, default=""),
    # NULLs do not collide, so each column only constrains its own signup path.
    Column("discord_id", String(64), nullable=True, unique=True),
    Column("google_id", String(255), nullable=True, unique=True),
    Column("created_at", Float, nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("token_hash", String(64), primary_key=True),
    Column(
        "user_id",
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("expires_at", Float, nullable=False, index=True),
)


def create_engine(url: str = DEFAULT_DATABASE_URL) -> AsyncEngine:
    return create_async_engine(url)


async def init_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
