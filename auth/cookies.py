from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import Response

from auth.models import FlowCookies

SESSION_COOKIE = "session"


@dataclass(frozen=True)
class CookieDirective:
    key: str
    value: str
    max_age: int
    secure: bool = False
    httponly: bool = True
    path: str = "/"
    samesite: str = "lax"

    def kwargs(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "max_age": self.max_age,
            "httponly": self.httponly,
            "secure": self.secure,
            "samesite": self.samesite,
            "path": self.path,
        }

    def apply(self, response: Response) -> Response:
        response.set_cookie(**self.kwargs())
        return response


def clear_cookie(key: str, *, secure: bool = False) -> CookieDirective:
    return CookieDirective(key=key, value="", max_age=0, secure=secure)


def read_flow_cookies(
    request: Request,
    *,
    state_cookie: str | None = None,
    verifier_cookie: str | None = None,
) -> FlowCookies:
    cookies = request.cookies
    return FlowCookies(
        state=cookies.get(state_cookie) if state_cookie else None,
        verifier=cookies.get(verifier_cookie) if verifier_cookie else None,
        session=cookies.get(SESSION_COOKIE),
    )
