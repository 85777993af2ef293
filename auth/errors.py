from __future__ import annotations


class AuthError(RuntimeError):
    """Base class for per-request authentication failures."""


class InvalidStateError(AuthError):
    def __init__(self, message: str = "Invalid or missing OAuth state.") -> None:
        super().__init__(message)


class MissingCodeError(InvalidStateError):
    def __init__(self, message: str = "Missing authorization code.") -> None:
        super().__init__(message)


class ProviderExchangeError(AuthError):
    pass


class ProviderAPIError(AuthError):
    pass


class Unauthorized(AuthError):
    def __init__(self, message: str = "Unauthorized request.") -> None:
        super().__init__(message)
        self.status_code = 401


class DuplicateUserError(AuthError):
    pass
