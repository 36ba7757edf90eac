"""
Request authorization guard. Each protected route declares a RouteAuth; the guard verifies
the bearer token and requires every listed scope as an exact token in the token's scope claim.
"""
import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from token_server.access_tokens import AccessTokenIssuer
from token_server.errors import AuthenticationError, AuthorizationError, to_http_exception
from token_server.models import AccessToken, split_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteAuth:
    auth_required: bool = True
    # Space-separated; all listed scopes are required
    required_scope: str | None = None

    @property
    def required_scopes(self) -> list[str]:
        return split_scope(self.required_scope)


PUBLIC = RouteAuth(auth_required=False)


def authorize(verifier: AccessTokenIssuer, token: str | None, route: RouteAuth) -> AccessToken | None:
    """
    Admit or reject one request. Returns the verified token (None for public routes).
    Raises AuthenticationError for a missing/invalid token, AuthorizationError for missing scope.
    """
    if not route.auth_required:
        return None
    if not token:
        raise AuthenticationError("Authorization header missing", error="invalid_request")
    access = verifier.validate_token(token)
    required = route.required_scopes
    if required and not access.has_all_scopes(required):
        logger.debug("Client %s lacks scope(s) %s", access.client_id, required)
        raise AuthorizationError("Insufficient scope")
    return access


security = HTTPBearer(auto_error=False)


def get_token_verifier(request: Request) -> AccessTokenIssuer:
    """The app's verifier, set on app.state at startup."""
    verifier = getattr(request.app.state, "token_verifier", None)
    if verifier is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "server_error", "error_description": "Token verification is not configured"},
        )
    return verifier


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    if credentials is None:
        return None
    if credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "invalid_request", "error_description": "Bearer scheme required"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def require_auth(route: RouteAuth):
    """Dependency factory: verified claims dict for the route ({} on public routes)."""

    def _check(
        token: Annotated[str | None, Depends(get_bearer_token)],
        verifier: Annotated[AccessTokenIssuer, Depends(get_token_verifier)],
    ) -> dict:
        try:
            access = authorize(verifier, token, route)
        except (AuthenticationError, AuthorizationError) as e:
            raise to_http_exception(e)
        return access.claims if access is not None else {}

    return Depends(_check)


def require_scopes(*scopes: str):
    return require_auth(RouteAuth(required_scope=" ".join(scopes) or None))


RequireAuth = require_auth(RouteAuth())
RequireRead = require_scopes("read")
RequireWrite = require_scopes("write")
RequireAdmin = require_scopes("admin")
