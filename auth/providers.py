from __future__ import annotations

import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

from auth.errors import ProviderAPIError, ProviderExchangeError
from auth.id_token import JwksCache, verify_id_token
from auth.identity import resolve_identity
from auth.models import IdentityClaims
from auth.state import generate_code_challenge

DISCORD_AUTHORIZE_URL = "https://discord.com/oauth2/authorize"
DISCORD_TOKEN_URL = "https://discord.com/api/oauth2/token"
DISCORD_USER_URL = "https://discord.com/api/v10/users/@me"

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ProviderConfig:
    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: tuple[str, ...] = field(default_factory=tuple)


@dataclass
class ProviderTokens:
    access_token: str
    id_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "ProviderTokens":
        if not isinstance(payload, dict):
            raise ProviderExchangeError("Token response must be a JSON object.")

        access_token = payload.get("access_token")
        id_token = payload.get("id_token")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope", "")

        if not isinstance(access_token, str) or not access_token:
            raise ProviderExchangeError("Token response missing access_token.")
        if id_token is not None and not isinstance(id_token, str):
            raise ProviderExchangeError("Token response id_token must be a string.")
        if expires_in is not None and not isinstance(expires_in, int):
            raise ProviderExchangeError("Token response expires_in must be an integer.")

        return cls(
            access_token=access_token,
            id_token=id_token or None,
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_in=expires_in,
            scope=scope if isinstance(scope, str) else "",
        )


class ProviderClient(ABC):
    """One OAuth2 identity provider: authorization URL, code exchange, identity."""

    name: str = ""
    requires_pkce: bool = False
    authorize_url: str = ""
    token_url: str = ""
    default_scopes: tuple[str, ...] = ()

    def __init__(
        self,
        config: ProviderConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self.scopes = list(config.scopes or self.default_scopes)
        self._client = client
        self._owns_client = client is None

    @property
    def state_cookie(self) -> str:
        return f"{self.name}_oauth_state"

    @property
    def verifier_cookie(self) -> str | None:
        return f"{self.name}_code_verifier" if self.requires_pkce else None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if not self._owns_client or self._client is None:
            return
        if not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def build_authorization_url(
        self,
        state: str,
        scopes: list[str] | None = None,
        verifier: str | None = None,
    ) -> str:
        query = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "state": state,
            "scope": " ".join(scopes if scopes is not None else self.scopes),
        }
        if self.requires_pkce and verifier:
            query["code_challenge"] = generate_code_challenge(verifier)
            query["code_challenge_method"] = "S256"
        return f"{self.authorize_url}?{urllib.parse.urlencode(query)}"

    async def exchange_code(self, code: str, verifier: str | None = None) -> ProviderTokens:
        """Trade an authorization code for tokens.

        Codes are single-use, so a failure here is final and never retried.
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
        }
        if self.requires_pkce:
            if not verifier:
                raise ProviderExchangeError("PKCE code verifier required.")
            payload["code_verifier"] = verifier

        try:
            response = await self._get_client().post(
                self.token_url,
                data=payload,
                auth=(self.config.client_id, self.config.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as error:
            raise ProviderExchangeError(
                f"Token request failed with status {error.response.status_code}."
            ) from error
        except httpx.HTTPError as error:
            raise ProviderExchangeError(
                f"Token request failed: {type(error).__name__}"
            ) from error
        except ValueError as error:
            raise ProviderExchangeError("Token response is not valid JSON.") from error

        return ProviderTokens.from_payload(data)

    @abstractmethod
    async def fetch_identity(self, tokens: ProviderTokens) -> IdentityClaims:
        raise NotImplementedError


class DiscordProvider(ProviderClient):
    name = "discord"
    authorize_url = DISCORD_AUTHORIZE_URL
    token_url = DISCORD_TOKEN_URL
    default_scopes = ("identify",)

    async def fetch_identity(self, tokens: ProviderTokens) -> IdentityClaims:
        try:
            response = await self._get_client().get(
                DISCORD_USER_URL,
                headers={"Authorization": f"Bearer {tokens.access_token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as error:
            raise ProviderAPIError(
                f"Profile request failed with status {error.response.status_code}."
            ) from error
        except httpx.HTTPError as error:
            raise ProviderAPIError(f"Profile request failed: {type(error).__name__}") from error
        except ValueError as error:
            raise ProviderAPIError("Profile response is not valid JSON.") from error

        return resolve_identity(self.name, data)


class GoogleProvider(ProviderClient):
    name = "google"
    requires_pkce = True
    authorize_url = GOOGLE_AUTHORIZE_URL
    token_url = GOOGLE_TOKEN_URL
    default_scopes = ("openid", "profile", "email")

    def __init__(
        self,
        config: ProviderConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        jwks: JwksCache | None = None,
    ) -> None:
        super().__init__(config, timeout=timeout, client=client)
        self.jwks = jwks or JwksCache()

    async def fetch_identity(self, tokens: ProviderTokens) -> IdentityClaims:
        if not tokens.id_token:
            raise ProviderAPIError("Token response missing id_token.")
        claims = await verify_id_token(
            tokens.id_token,
            client_id=self.config.client_id,
            jwks=self.jwks,
            client=self._get_client(),
            timeout=self.timeout,
        )
        return resolve_identity(self.name, claims)


def build_providers(
    *,
    discord: ProviderConfig,
    google: ProviderConfig,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
) -> dict[str, ProviderClient]:
    providers: list[ProviderClient] = [
        DiscordProvider(discord, timeout=timeout, client=client),
        GoogleProvider(google, timeout=timeout, client=client),
    ]
    return {provider.name: provider for provider in providers}
