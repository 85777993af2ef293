from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.cookies import CookieDirective, clear_cookie, read_flow_cookies
from auth.errors import AuthError, InvalidStateError, Unauthorized
from auth.models import User
from auth.providers import ProviderClient
from auth.sessions import SessionManager
from auth.state import StateGuard
from auth.user_store import UserStore
from authgate.constants import LOGGER


class AuthFlow:
    """Login, callback and validate endpoints for a set of OAuth2 providers."""

    def __init__(
        self,
        *,
        providers: dict[str, ProviderClient],
        state_guard: StateGuard,
        users: UserStore,
        sessions: SessionManager,
        cookie_secure: bool = False,
        post_login_redirect: str = "/",
    ) -> None:
        self.providers = providers
        self.state_guard = state_guard
        self.users = users
        self.sessions = sessions
        self.cookie_secure = cookie_secure
        self.post_login_redirect = post_login_redirect

    def routes(self) -> list[Route]:
        return [
            Route("/login/{provider}", self._handle_login, methods=["GET"]),
            Route("/callback/{provider}", self._handle_callback, methods=["GET"]),
            Route("/validate", self._handle_validate, methods=["GET"]),
        ]

    async def close(self) -> None:
        for provider in self.providers.values():
            await provider.close()

    # -- handlers --------------------------------------------------------------

    async def _handle_login(self, request: Request) -> Response:
        provider = self.providers.get(request.path_params["provider"])
        if provider is None:
            return Response(status_code=404)

        bundle = self.state_guard.issue(provider.requires_pkce)
        url = provider.build_authorization_url(bundle.state, verifier=bundle.verifier)

        response = RedirectResponse(url=url, status_code=302)
        self._state_cookie(provider.state_cookie, bundle.state).apply(response)
        if provider.verifier_cookie and bundle.verifier:
            self._state_cookie(provider.verifier_cookie, bundle.verifier).apply(response)
        return response

    async def _handle_callback(self, request: Request) -> Response:
        provider = self.providers.get(request.path_params["provider"])
        if provider is None:
            return Response(status_code=404)

        try:
            token, expires_at = await self._complete_login(provider, request)
        except AuthError as error:
            LOGGER.warning(
                "OAuth callback rejected provider=%s error=%s",
                provider.name,
                type(error).__name__,
            )
            return self._reject(provider)
        except Exception:
            LOGGER.exception("OAuth callback failed provider=%s", provider.name)
            return self._reject(provider)

        response = RedirectResponse(url=self.post_login_redirect, status_code=302)
        self._clear_state_cookies(provider, response)
        self.sessions.cookie_directive(token, expires_at).apply(response)
        return response

    async def _handle_validate(self, request: Request) -> Response:
        cookies = read_flow_cookies(request)
        try:
            validation = await self.sessions.validate(cookies.session)
        except Unauthorized:
            return JSONResponse({"unauthorized": True})
        except Exception:
            LOGGER.exception("Session validation failed")
            return JSONResponse({"unauthorized": True})

        response = JSONResponse({"unauthorized": False})
        if validation.renewed and cookies.session:
            self.sessions.cookie_directive(
                cookies.session, validation.session.expires_at
            ).apply(response)
        return response

    # -- helpers ---------------------------------------------------------------

    async def _complete_login(self, provider: ProviderClient, request: Request) -> tuple[str, float]:
        if request.query_params.get("error"):
            raise InvalidStateError("Provider returned an authorization error.")

        cookies = read_flow_cookies(
            request,
            state_cookie=provider.state_cookie,
            verifier_cookie=provider.verifier_cookie,
        )
        code = self.state_guard.verify(
            request.query_params.get("state"),
            cookies.state,
            request.query_params.get("code"),
            cookies.verifier,
            requires_pkce=provider.requires_pkce,
        )

        tokens = await provider.exchange_code(code, cookies.verifier)
        claims = await provider.fetch_identity(tokens)
        user: User = await self.users.find_or_create(provider.name, claims)

        token = self.sessions.generate_token()
        session = await self.sessions.create(token, user.id)
        LOGGER.info("Session issued user=%s provider=%s", user.id, provider.name)
        return token, session.expires_at

    def _state_cookie(self, key: str, value: str) -> CookieDirective:
        return CookieDirective(
            key=key,
            value=value,
            max_age=self.state_guard.ttl_seconds,
            secure=self.cookie_secure,
        )

    def _clear_state_cookies(self, provider: ProviderClient, response: Response) -> None:
        clear_cookie(provider.state_cookie, secure=self.cookie_secure).apply(response)
        if provider.verifier_cookie:
            clear_cookie(provider.verifier_cookie, secure=self.cookie_secure).apply(response)

    def _reject(self, provider: ProviderClient) -> Response:
        response = Response(status_code=400)
        self._clear_state_cookies(provider, response)
        return response
