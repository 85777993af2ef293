"""
Process-wide configuration for the authentication service.

Built once at startup from the environment and handed to the app factory;
nothing below it reads os.environ.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from auth.db import DEFAULT_DATABASE_URL
from auth.providers import DEFAULT_TIMEOUT_SECONDS, ProviderConfig
from auth.sessions import SESSION_TTL_SECONDS
from auth.state import STATE_TTL_SECONDS

from .env import get_env_int, is_truthy


@dataclass(frozen=True)
class AuthConfig:
    discord: ProviderConfig
    google: ProviderConfig
    database_url: str = DEFAULT_DATABASE_URL
    session_ttl_seconds: int = SESSION_TTL_SECONDS
    state_ttl_seconds: int = STATE_TTL_SECONDS
    provider_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    cookie_secure: bool = False
    post_login_redirect: str = "/"


def _env(key: str, default: str = "") -> str:
    return (os.getenv(key, "") or default).strip()


def _scopes(key: str) -> tuple[str, ...]:
    return tuple(_env(key).split())


def load_config() -> AuthConfig:
    discord = ProviderConfig(
        client_id=_env("DISCORD_CLIENT_ID"),
        client_secret=_env("DISCORD_CLIENT_TOKEN"),
        redirect_uri=_env("DISCORD_REDIRECT"),
        scopes=_scopes("DISCORD_SCOPES"),
    )
    google = ProviderConfig(
        client_id=_env("GOOGLE_CLIENT_ID"),
        client_secret=_env("GOOGLE_CLIENT_SECRET"),
        redirect_uri=_env("GOOGLE_REDIRECT_URI"),
        scopes=_scopes("GOOGLE_SCOPES"),
    )

    cookie_secure_env = _env("AUTHGATE_COOKIE_SECURE").lower()
    if cookie_secure_env:
        cookie_secure = is_truthy(cookie_secure_env)
    else:
        # Default: secure cookies when every callback is served over https.
        cookie_secure = all(
            config.redirect_uri.startswith("https://") for config in (discord, google)
        )

    return AuthConfig(
        discord=discord,
        google=google,
        database_url=_env("AUTHGATE_DATABASE_URL", DEFAULT_DATABASE_URL),
        session_ttl_seconds=get_env_int("AUTHGATE_SESSION_TTL_SECONDS", SESSION_TTL_SECONDS),
        provider_timeout_seconds=float(
            get_env_int("AUTHGATE_PROVIDER_TIMEOUT", int(DEFAULT_TIMEOUT_SECONDS))
        ),
        cookie_secure=cookie_secure,
        post_login_redirect=_env("AUTHGATE_POST_LOGIN_REDIRECT", "/"),
    )
