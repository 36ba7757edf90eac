"""
Token issuance use cases: client_credentials and refresh_token grants, verification,
revocation. Collaborators are injected by construction so stores can be swapped.
"""
import logging
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from token_server.access_tokens import AccessTokenIssuer
from token_server.client_registry import ClientRegistry
from token_server.config import DEVELOPMENT_CLIENT_SECRET
from token_server.errors import AuthenticationError, ClientError, OAuthError, ServerError
from token_server.models import DEFAULT_REFRESH_TOKEN_EXPIRES, Client, RefreshToken, split_scope
from token_server.refresh_tokens import RefreshTokenStore

logger = logging.getLogger(__name__)

GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_REFRESH_TOKEN = "refresh_token"
TOKEN_TYPE = "Bearer"


@dataclass(frozen=True)
class TokenResult:
    access_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE
    refresh_token: str | None = None
    scope: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }
        if self.refresh_token:
            data["refresh_token"] = self.refresh_token
        if self.scope:
            data["scope"] = self.scope
        return data


@contextmanager
def _infrastructure(action: str):
    """Domain errors pass through; anything else from stores or signing becomes ServerError."""
    try:
        yield
    except OAuthError:
        raise
    except Exception as e:
        logger.exception("%s failed", action)
        raise ServerError("Token service is temporarily unavailable") from e


class TokenService:
    def __init__(
        self,
        clients: ClientRegistry,
        issuer: AccessTokenIssuer,
        refresh_tokens: RefreshTokenStore,
        *,
        refresh_token_enabled: bool = True,
        refresh_token_rotation: bool = True,
        refresh_token_expires: int = DEFAULT_REFRESH_TOKEN_EXPIRES,
    ):
        self.clients = clients
        self.issuer = issuer
        self.refresh_tokens = refresh_tokens
        self.refresh_token_enabled = refresh_token_enabled
        self.refresh_token_rotation = refresh_token_rotation
        self.refresh_token_expires = refresh_token_expires

    def validate_client(
        self,
        client_id: str,
        client_secret: str | None,
        certificate_fingerprint: str | None = None,
    ) -> Client:
        """Resolve and authenticate a client (secret, then optional certificate)."""
        with _infrastructure("Client lookup"):
            client = self.clients.find_by_client_id(client_id)
        if client is None:
            logger.warning("Client not found: %s", client_id)
            raise AuthenticationError("Client not found")
        if not client.validate_credentials(client_secret):
            logger.warning("Invalid client credentials for client: %s", client_id)
            raise AuthenticationError("Invalid client credentials")
        if not client.validate_certificate(certificate_fingerprint):
            logger.warning("Invalid client certificate for client: %s", client_id)
            raise AuthenticationError("Invalid client certificate")
        return client

    def generate(
        self,
        grant_type: str,
        client_id: str,
        client_secret: str | None,
        scope: str | None = None,
        certificate_fingerprint: str | None = None,
    ) -> TokenResult:
        """client_credentials grant: access token plus (optionally) a refresh token."""
        if grant_type != GRANT_CLIENT_CREDENTIALS:
            logger.warning("Unsupported grant type %r from client %s", grant_type, client_id)
            raise ClientError("Only client_credentials grant type is supported", error="unsupported_grant_type")
        logger.debug("Generating access token for client %s, requested scope: %s", client_id, scope or "none")

        client = self.validate_client(client_id, client_secret, certificate_fingerprint)
        try:
            validated_scope = client.validate_and_filter_scopes(scope)
        except ClientError as e:
            logger.warning("Scope validation failed for client %s: %s", client_id, e.description)
            raise

        with _infrastructure("Access token signing"):
            access = self.issuer.generate_token(client.client_id, validated_scope or None)

        refresh_value = None
        if self.refresh_token_enabled:
            record = RefreshToken.create(client.client_id, self.refresh_token_expires, validated_scope or None)
            with _infrastructure("Refresh token save"):
                self.refresh_tokens.save(record)
            refresh_value = record.refresh_token

        logger.info("Access token issued for client %s", client.client_id)
        return TokenResult(
            access_token=access.token,
            expires_in=self.issuer.expires_in,
            refresh_token=refresh_value,
            scope=validated_scope or None,
        )

    def refresh(self, grant_type: str, refresh_token: str | None, scope: str | None = None) -> TokenResult:
        """
        refresh_token grant. Expired records are deleted on sight; expired, revoked and unknown
        tokens fail with distinct messages. With rotation, the old record is claimed (removed only
        while still valid) so two concurrent refreshes cannot both succeed and a revoke that
        lands mid-refresh is honored.
        """
        if grant_type != GRANT_REFRESH_TOKEN:
            logger.warning("Unsupported grant type %r on refresh", grant_type)
            raise ClientError(
                "Only refresh_token grant type is supported for this endpoint",
                error="unsupported_grant_type",
            )
        if not refresh_token:
            raise ClientError("refresh_token is required")

        with _infrastructure("Refresh token lookup"):
            record = self.refresh_tokens.find_by_token(refresh_token)
        if record is None:
            logger.warning("Unknown refresh token presented")
            raise AuthenticationError("Invalid refresh token", error="invalid_grant")

        now = datetime.now(timezone.utc)
        if not record.is_valid(now):
            if record.is_expired(now):
                with _infrastructure("Expired refresh token cleanup"):
                    self.refresh_tokens.delete_by_token(refresh_token)
                logger.warning("Expired refresh token presented by client %s", record.client_id)
                raise AuthenticationError("Refresh token has expired", error="invalid_grant")
            if record.is_revoked:
                logger.warning("Revoked refresh token presented by client %s", record.client_id)
                raise AuthenticationError("Refresh token has been revoked", error="invalid_grant")
            raise AuthenticationError("Invalid refresh token", error="invalid_grant")

        final_scope = record.scope
        requested = split_scope(scope)
        if requested:
            granted = split_scope(record.scope)
            if not granted or any(s not in granted for s in requested):
                logger.warning("Requested scope exceeds refresh token scope for client %s", record.client_id)
                raise ClientError("Requested scope exceeds refresh token scope", error="invalid_scope")
            final_scope = " ".join(requested)

        with _infrastructure("Access token signing"):
            access = self.issuer.generate_token(record.client_id, final_scope)

        new_refresh_value = None
        if self.refresh_token_rotation:
            with _infrastructure("Refresh token rotation"):
                claimed = self.refresh_tokens.claim(refresh_token)
                current = None if claimed is not None else self.refresh_tokens.find_by_token(refresh_token)
            if claimed is None:
                if current is not None and current.is_revoked:
                    logger.warning("Refresh token for client %s was revoked during refresh", record.client_id)
                    raise AuthenticationError("Refresh token has been revoked", error="invalid_grant")
                logger.warning("Refresh token for client %s was already used", record.client_id)
                raise AuthenticationError("Invalid refresh token", error="invalid_grant")
            new_record = RefreshToken.create(record.client_id, self.refresh_token_expires, final_scope)
            with _infrastructure("Refresh token save"):
                self.refresh_tokens.save(new_record)
            new_refresh_value = new_record.refresh_token

        logger.info("Refresh token grant processed for client %s (rotated=%s)", record.client_id, bool(new_refresh_value))
        return TokenResult(
            access_token=access.token,
            expires_in=self.issuer.expires_in,
            refresh_token=new_refresh_value,
            scope=final_scope or None,
        )

    def verify(self, token: str | None) -> dict[str, Any]:
        """Never raises: {"valid": True, "payload": ...} or {"valid": False, "error": "Invalid token"}."""
        if not token:
            return {"valid": False, "error": "Invalid token"}
        try:
            access = self.issuer.validate_token(token)
        except AuthenticationError:
            return {"valid": False, "error": "Invalid token"}
        return {"valid": True, "payload": access.verification_info()}

    def generate_client_credentials(self) -> dict[str, str]:
        """Random client credentials for local setup. Secret is "development" in development mode."""
        client_id = f"client_{secrets.token_hex(8)}"
        if self.clients.development_mode:
            client_secret = DEVELOPMENT_CLIENT_SECRET
        else:
            client_secret = f"secret_{secrets.token_urlsafe(24)}"
        return {"client_id": client_id, "client_secret": client_secret}

    def revoke_refresh_token(
        self,
        client_id: str,
        client_secret: str | None,
        token: str,
        certificate_fingerprint: str | None = None,
    ) -> bool:
        """
        Revoke one refresh token owned by the authenticated client.
        Unknown tokens and tokens of other clients are ignored (no information leak).
        """
        client = self.validate_client(client_id, client_secret, certificate_fingerprint)
        with _infrastructure("Refresh token revocation"):
            record = self.refresh_tokens.find_by_token(token)
            if record is None or record.client_id != client.client_id:
                return False
            self.refresh_tokens.revoke(record.token_id)
        logger.info("Refresh token %s revoked for client %s", record.token_id, client.client_id)
        return True

    def revoke_all_refresh_tokens(
        self,
        client_id: str,
        client_secret: str | None,
        certificate_fingerprint: str | None = None,
    ) -> int:
        """Revoke every refresh token of the client. Returns how many were still active."""
        client = self.validate_client(client_id, client_secret, certificate_fingerprint)
        with _infrastructure("Refresh token revocation"):
            active = self.refresh_tokens.count_active_for_client(client.client_id)
            self.refresh_tokens.revoke_all_for_client(client.client_id)
        logger.info("Revoked all refresh tokens for client %s (%d active)", client.client_id, active)
        return active

    def sweep_expired(self) -> int:
        return self.refresh_tokens.delete_expired()
