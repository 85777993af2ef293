from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StateBundle:
    state: str
    verifier: str | None = None


@dataclass(frozen=True)
class FlowCookies:
    """Cookies relevant to one login/callback/validate request."""

    state: str | None = None
    verifier: str | None = None
    session: str | None = None


@dataclass(frozen=True)
class IdentityClaims:
    provider: str
    provider_user_id: str
    email: str
    display_name: str
    avatar_url: str
    username: str


@dataclass
class User:
    id: str
    email: str
    username: str
    display_name: str
    avatar_url: str
    discord_id: str | None = None
    google_id: str | None = None
    created_at: float = 0.0


@dataclass
class Session:
    token_hash: str
    user_id: str
    expires_at: float


@dataclass(frozen=True)
class SessionValidation:
    user: User
    session: Session
    renewed: bool = False
