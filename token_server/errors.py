"""
Error taxonomy for the token service.
Use cases raise these; the HTTP layer turns them into HTTPException with an OAuth-style detail.
"""
from fastapi import HTTPException


class OAuthError(Exception):
    """Base error: carries an OAuth error code and a caller-safe description."""

    status_code = 400
    default_error = "invalid_request"

    def __init__(self, description: str, *, error: str | None = None):
        super().__init__(description)
        self.description = description
        self.error = error or self.default_error


class ClientError(OAuthError):
    """Malformed or disallowed request (grant type, scope)."""

    status_code = 400


class AuthenticationError(OAuthError):
    """Identity or credential failure: unknown client, bad secret, invalid token."""

    status_code = 401
    default_error = "invalid_client"


class AuthorizationError(OAuthError):
    """Valid token without the required scope."""

    status_code = 403
    default_error = "insufficient_scope"


class ServerError(OAuthError):
    """Store or signing failure; details stay in the logs."""

    status_code = 500
    default_error = "server_error"


def to_http_exception(exc: OAuthError) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.error, "error_description": exc.description},
        headers=headers,
    )
