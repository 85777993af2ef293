import json
import secrets
import time
import urllib.parse

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from starlette.testclient import TestClient

from auth.flow import AuthFlow
from auth.id_token import GOOGLE_JWKS_URL
from auth.providers import (
    DISCORD_TOKEN_URL,
    DISCORD_USER_URL,
    GOOGLE_TOKEN_URL,
    ProviderConfig,
    build_providers,
)
from auth.session_store import MemorySessionStore
from auth.sessions import SessionManager
from auth.state import StateGuard, generate_code_challenge
from auth.user_store import MemoryUserStore
from authgate.app import build_app

DISCORD_CONFIG = ProviderConfig(
    client_id="discord-client",
    client_secret="discord-secret",
    redirect_uri="http://testserver/callback/discord",
)
GOOGLE_CONFIG = ProviderConfig(
    client_id="google-client",
    client_secret="google-secret",
    redirect_uri="http://testserver/callback/google",
)
KEY_ID = "test-key"


def make_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def jwk_for(private_key, kid: str = KEY_ID) -> dict:
    jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return jwk


def google_claims(**overrides) -> dict:
    now = int(time.time())
    claims = {
        "iss": "https://accounts.google.com",
        "aud": GOOGLE_CONFIG.client_id,
        "sub": "google-sub-1",
        "email": "ada@example.com",
        "name": "Ada Lovelace",
        "picture": "https://lh3.googleusercontent.com/a/ada",
        "iat": now,
        "exp": now + 3600,
    }
    claims.update(overrides)
    return claims


def sign_id_token(private_key, claims: dict, kid: str = KEY_ID) -> str:
    return jwt.encode(claims, private_key, algorithm="RS256", headers={"kid": kid})


class FakeIdentityProvider:
    """Stands in for Discord and Google behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.private_key = make_rsa_key()
        self.discord_profile = {
            "id": "80351110224678912",
            "username": "nelly",
            "global_name": "Nelly Bly",
            "avatar": "8342729096ea3675442027381ff50dfe",
            "email": "nelly@example.com",
        }
        self.google_overrides: dict = {}
        self.codes: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def approve(self, authorize_url: str) -> dict[str, str]:
        """Simulate the user granting consent; returns the callback query."""
        query = urllib.parse.parse_qs(urllib.parse.urlparse(authorize_url).query)
        code = secrets.token_urlsafe(16)
        self.codes[code] = {
            "challenge": query.get("code_challenge", [None])[0],
            "used": False,
        }
        return {"code": code, "state": query["state"][0]}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.method == "POST" and url in (DISCORD_TOKEN_URL, GOOGLE_TOKEN_URL):
            return self._token(request, google=url == GOOGLE_TOKEN_URL)
        if request.method == "GET" and url == DISCORD_USER_URL:
            if request.headers.get("authorization", "").startswith("Bearer discord-access-"):
                return httpx.Response(200, json=self.discord_profile)
            return httpx.Response(401, json={"message": "401: Unauthorized"})
        if request.method == "GET" and url == GOOGLE_JWKS_URL:
            return httpx.Response(200, json={"keys": [jwk_for(self.private_key)]})
        return httpx.Response(404)

    def _token(self, request: httpx.Request, *, google: bool) -> httpx.Response:
        form = {key: values[0] for key, values in urllib.parse.parse_qs(request.content.decode()).items()}
        issued = self.codes.get(form.get("code", ""))
        if issued is None or issued["used"]:
            return httpx.Response(400, json={"error": "invalid_grant"})
        issued["used"] = True

        if google:
            verifier = form.get("code_verifier", "")
            if not verifier or generate_code_challenge(verifier) != issued["challenge"]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            id_token = sign_id_token(self.private_key, google_claims(**self.google_overrides))
            return httpx.Response(
                200,
                json={
                    "access_token": "google-access",
                    "id_token": id_token,
                    "token_type": "Bearer",
                    "expires_in": 3599,
                    "scope": "openid profile email",
                },
            )

        return httpx.Response(
            200,
            json={
                "access_token": f"discord-access-{form['code']}",
                "token_type": "Bearer",
                "expires_in": 604800,
                "scope": "identify",
            },
        )


def _build_flow(*, fake: FakeIdentityProvider | None = None, clock=None):
    fake = fake or FakeIdentityProvider()
    users = MemoryUserStore()
    store = MemorySessionStore()
    sessions = SessionManager(store, users, clock=clock or time.time)
    flow = AuthFlow(
        providers=build_providers(
            discord=DISCORD_CONFIG,
            google=GOOGLE_CONFIG,
            timeout=5.0,
            client=fake.client(),
        ),
        state_guard=StateGuard(),
        users=users,
        sessions=sessions,
    )
    return flow, TestClient(build_app(flow)), fake


def _login(test_client: TestClient, provider: str, fake: FakeIdentityProvider) -> dict[str, str]:
    response = test_client.get(f"/login/{provider}", follow_redirects=False)
    return fake.approve(response.headers["location"])


def session_cookie_headers(response: httpx.Response) -> list[str]:
    return [
        header
        for header in response.headers.get_list("set-cookie")
        if header.startswith("session=")
    ]
