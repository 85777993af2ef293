from __future__ import annotations

import re
from typing import Any, Callable

from auth.errors import ProviderAPIError
from auth.models import IdentityClaims

DISCORD_AVATAR_URL = "https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"
MAX_USERNAME_LENGTH = 32


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def first_token(value: str) -> str:
    parts = value.split()
    return parts[0] if parts else ""


def derive_username(*candidates: str) -> str:
    for candidate in candidates:
        cleaned = re.sub(r"\s+", "_", (candidate or "").strip()).lower()
        cleaned = cleaned[:MAX_USERNAME_LENGTH]
        if cleaned:
            return cleaned
    return "user"


def resolve_discord(payload: dict[str, Any]) -> IdentityClaims:
    user_id = _text(payload, "id")
    if not user_id:
        raise ProviderAPIError("Discord profile missing id.")

    username = _text(payload, "username")
    display = _text(payload, "global_name") or username
    avatar = _text(payload, "avatar")
    avatar_url = DISCORD_AVATAR_URL.format(user_id=user_id, avatar=avatar) if avatar else ""

    return IdentityClaims(
        provider="discord",
        provider_user_id=user_id,
        email=_text(payload, "email"),
        display_name=first_token(display),
        avatar_url=avatar_url,
        username=derive_username(username, display),
    )


def resolve_google(payload: dict[str, Any]) -> IdentityClaims:
    subject = _text(payload, "sub")
    if not subject:
        raise ProviderAPIError("Google ID token missing sub.")

    email = _text(payload, "email")
    name = _text(payload, "name")
    return IdentityClaims(
        provider="google",
        provider_user_id=subject,
        email=email,
        display_name=name,
        avatar_url=_text(payload, "picture"),
        username=derive_username(email.split("@", 1)[0], first_token(name)),
    )


RESOLVERS: dict[str, Callable[[dict[str, Any]], IdentityClaims]] = {
    "discord": resolve_discord,
    "google": resolve_google,
}


def resolve_identity(provider: str, payload: dict[str, Any]) -> IdentityClaims:
    resolver = RESOLVERS.get(provider)
    if resolver is None:
        raise ProviderAPIError(f"Unknown identity provider: {provider}")
    if not isinstance(payload, dict):
        raise ProviderAPIError("Identity payload must be a JSON object.")
    return resolver(payload)
