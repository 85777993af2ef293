from __future__ import annotations

import contextlib

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.db import create_engine, init_schema
from auth.flow import AuthFlow
from auth.providers import build_providers
from auth.session_store import SqlSessionStore
from auth.sessions import SessionManager
from auth.state import StateGuard
from auth.user_store import SqlUserStore

from .config import AuthConfig
from .constants import APP_VERSION, LOGGER


async def health_route(request: Request) -> Response:
    del request
    return JSONResponse({"status": "ok", "version": APP_VERSION})


def build_flow(
    config: AuthConfig,
    engine: AsyncEngine,
    *,
    client: httpx.AsyncClient | None = None,
) -> AuthFlow:
    users = SqlUserStore(engine)
    sessions = SessionManager(
        SqlSessionStore(engine),
        users,
        ttl_seconds=config.session_ttl_seconds,
        cookie_secure=config.cookie_secure,
    )
    providers = build_providers(
        discord=config.discord,
        google=config.google,
        timeout=config.provider_timeout_seconds,
        client=client,
    )
    return AuthFlow(
        providers=providers,
        state_guard=StateGuard(ttl_seconds=config.state_ttl_seconds),
        users=users,
        sessions=sessions,
        cookie_secure=config.cookie_secure,
        post_login_redirect=config.post_login_redirect,
    )


def build_app(flow: AuthFlow, *, lifespan=None) -> Starlette:
    routes = [Route("/health", health_route, methods=["GET"]), *flow.routes()]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.auth_flow = flow
    return app


def create_app(config: AuthConfig, *, engine: AsyncEngine | None = None) -> Starlette:
    engine = engine or create_engine(config.database_url)
    flow = build_flow(config, engine)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        await init_schema(engine)
        await flow.sessions.purge_expired()
        LOGGER.info("Auth service ready providers=%s", ",".join(sorted(flow.providers)))
        try:
            yield
        finally:
            await flow.close()
            await engine.dispose()

    return build_app(flow, lifespan=lifespan)
