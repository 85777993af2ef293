import pytest_asyncio

from auth.db import create_engine, init_schema
from auth.session_store import MemorySessionStore, SqlSessionStore
from auth.user_store import MemoryUserStore, SqlUserStore


@pytest_asyncio.fixture
async def sql_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def user_store(request, sql_engine):
    if request.param == "memory":
        return MemoryUserStore()
    return SqlUserStore(sql_engine)


@pytest_asyncio.fixture(params=["memory", "sql"])
async def session_store(request, sql_engine):
    if request.param == "memory":
        return MemorySessionStore()
    return SqlSessionStore(sql_engine)
