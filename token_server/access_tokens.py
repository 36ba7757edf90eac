"""
Access token issuer: RS256-signed JWTs carrying client identity and scope.
Verification needs only the public key, so resource servers can run in verify-only mode.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt

from token_server.errors import AuthenticationError
from token_server.models import AccessToken

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]


class AccessTokenIssuer:
    def __init__(
        self,
        private_key,
        public_key,
        *,
        issuer: str,
        audience: str,
        expires_in: int = 3600,
        kid: str | None = None,
    ):
        if public_key is None:
            if private_key is None:
                raise ValueError("A public or private key is required")
            public_key = private_key.public_key()
        self._private_key = private_key
        self._public_key = public_key
        self.issuer = issuer
        self.audience = audience
        self.expires_in = expires_in
        self.kid = kid

    @property
    def public_key(self):
        return self._public_key

    def generate_token(self, client_id: str, scope: str | None = None) -> AccessToken:
        """Sign a new access token. Empty scope is omitted from the claims."""
        if self._private_key is None:
            raise RuntimeError("This issuer has no private key and can only verify tokens")
        now = datetime.now(timezone.utc)
        issued_at = int(now.timestamp())
        expires_at = int((now + timedelta(seconds=self.expires_in)).timestamp())
        payload = {
            "iss": self.issuer,
            "sub": client_id,
            "aud": self.audience,
            "iat": issued_at,
            "exp": expires_at,
        }
        if scope:
            payload["scope"] = scope
        headers = {"typ": "JWT"}
        if self.kid:
            headers["kid"] = self.kid
        token = jwt.encode(payload, self._private_key, algorithm=ALGORITHM, headers=headers)
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return AccessToken.from_claims(token, payload)

    def validate_token(self, token: str) -> AccessToken:
        """
        Verify signature, expiry, issuer and audience. Any failure raises the same
        AuthenticationError("Invalid token"); the cause is only logged.
        """
        try:
            payload = jwt.decode(
                token,
                self._public_key,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": _REQUIRED_CLAIMS},
            )
            return AccessToken.from_claims(token, payload)
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError) as e:
            logger.debug("Access token verification failed: %s", e)
            raise AuthenticationError("Invalid token", error="invalid_token") from None

    def has_scope(self, token: str, required_scope: str) -> bool:
        try:
            return self.validate_token(token).has_scope(required_scope)
        except AuthenticationError:
            return False
