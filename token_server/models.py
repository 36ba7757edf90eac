"""
Domain models for the token service: OAuth clients, access tokens, refresh tokens.
All are immutable; a revoked refresh token is a new record, never an in-place update.
"""
import hmac
import secrets
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from token_server.errors import ClientError

DEFAULT_REFRESH_TOKEN_EXPIRES = 7 * 24 * 60 * 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def split_scope(scope: str | None) -> list[str]:
    """Space-separated scope string -> list of non-empty tokens, input order kept."""
    if not scope:
        return []
    return scope.split()


def _normalize_fingerprint(value: str) -> str:
    return value.replace(":", "").strip().upper()


@dataclass(frozen=True)
class Client:
    client_id: str
    client_secret: str
    allowed_scopes: tuple[str, ...] = ()
    certificate_fingerprint: str | None = None
    requires_certificate: bool = False

    def has_scope(self, scope: str) -> bool:
        return scope in self.allowed_scopes

    def has_all_scopes(self, scopes: list[str]) -> bool:
        return all(self.has_scope(s) for s in scopes)

    def has_any_scope(self, scopes: list[str]) -> bool:
        return any(self.has_scope(s) for s in scopes)

    def validate_credentials(self, client_secret: str | None) -> bool:
        if client_secret is None:
            return False
        return hmac.compare_digest(self.client_secret.encode("utf-8"), client_secret.encode("utf-8"))

    def validate_certificate(self, fingerprint: str | None = None) -> bool:
        """
        Mutual-TLS factor. Clients that do not require a certificate always pass.
        With a configured fingerprint the presented one must match; without one any certificate passes.
        """
        if not self.requires_certificate:
            return True
        if not fingerprint:
            return False
        if self.certificate_fingerprint:
            return _normalize_fingerprint(self.certificate_fingerprint) == _normalize_fingerprint(fingerprint)
        return True

    def validate_and_filter_scopes(self, requested: str | None = None) -> str:
        """
        Validate requested scopes against allowed_scopes (exact, case-sensitive).
        Returns the normalized scope string ("" when nothing was requested).
        Raises ClientError naming the offending scopes and the allowed list.
        """
        requested_list = split_scope(requested)
        if not requested_list:
            return ""
        invalid = [s for s in requested_list if not self.has_scope(s)]
        if invalid:
            raise ClientError(
                f"Client is not authorized for scopes: {', '.join(invalid)}. "
                f"Allowed scopes: {', '.join(self.allowed_scopes)}",
                error="invalid_scope",
            )
        return " ".join(requested_list)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "Client":
        """Build from one OAUTH_CLIENTS entry (camelCase as documented, snake_case also accepted)."""
        client_id = config.get("clientId", config.get("client_id"))
        client_secret = config.get("clientSecret", config.get("client_secret"))
        scopes = config.get("allowedScopes", config.get("allowed_scopes", []))
        if not isinstance(client_id, str) or not isinstance(client_secret, str):
            raise ValueError("clientId and clientSecret must be strings")
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            raise ValueError("allowedScopes must be a list of strings")
        fingerprint = config.get("certificateFingerprint", config.get("certificate_fingerprint"))
        requires = config.get("requiresCertificate", config.get("requires_certificate", False))
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            allowed_scopes=tuple(scopes),
            certificate_fingerprint=fingerprint or None,
            requires_certificate=bool(requires),
        )


@dataclass(frozen=True)
class AccessToken:
    """A verified (or freshly signed) access token and its claims."""

    token: str
    client_id: str
    issuer: str
    audience: str
    issued_at: int
    expires_at: int
    scope: str | None = None

    @property
    def scopes(self) -> list[str]:
        return split_scope(self.scope)

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes

    def has_all_scopes(self, scopes: list[str]) -> bool:
        return all(self.has_scope(s) for s in scopes)

    def has_any_scope(self, scopes: list[str]) -> bool:
        return any(self.has_scope(s) for s in scopes)

    def is_expired(self, now: int | None = None) -> bool:
        if now is None:
            now = int(_utc_now().timestamp())
        return now >= self.expires_at

    @property
    def claims(self) -> dict[str, Any]:
        claims = {
            "sub": self.client_id,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }
        if self.scope:
            claims["scope"] = self.scope
        return claims

    def verification_info(self) -> dict[str, Any]:
        """Payload returned by /oauth/verify."""
        info = {
            "client_id": self.client_id,
            "issuer": self.issuer,
            "audience": self.audience,
            "issued_at": datetime.fromtimestamp(self.issued_at, tz=timezone.utc).isoformat(),
            "expires_at": datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat(),
        }
        if self.scope:
            info["scope"] = self.scope
        return info

    @classmethod
    def from_claims(cls, token: str, claims: dict[str, Any]) -> "AccessToken":
        aud = claims["aud"]
        if isinstance(aud, list):
            aud = aud[0] if aud else ""
        scope = claims.get("scope")
        for name, value in (("sub", claims["sub"]), ("iss", claims["iss"]), ("aud", aud)):
            if not isinstance(value, str):
                raise ValueError(f"{name} claim must be a string")
        if scope is not None and not isinstance(scope, str):
            raise ValueError("scope claim must be a space-separated string")
        return cls(
            token=token,
            client_id=claims["sub"],
            issuer=claims["iss"],
            audience=aud,
            issued_at=int(claims["iat"]),
            expires_at=int(claims["exp"]),
            scope=scope or None,
        )


@dataclass(frozen=True)
class RefreshToken:
    token_id: str
    client_id: str
    refresh_token: str = field(repr=False)
    expires_at: datetime
    created_at: datetime
    is_revoked: bool = False
    scope: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utc_now()) >= self.expires_at

    def is_valid(self, now: datetime | None = None) -> bool:
        return not self.is_expired(now) and not self.is_revoked

    def remaining_seconds(self, now: datetime | None = None) -> int:
        now = now or _utc_now()
        if self.is_expired(now):
            return 0
        return int((self.expires_at - now).total_seconds())

    def revoked(self) -> "RefreshToken":
        """Copy of this record with is_revoked=True; every other field unchanged."""
        return replace(self, is_revoked=True)

    @classmethod
    def create(
        cls,
        client_id: str,
        expires_in_seconds: int = DEFAULT_REFRESH_TOKEN_EXPIRES,
        scope: str | None = None,
    ) -> "RefreshToken":
        """New record with independently drawn random id and token string."""
        created_at = _utc_now()
        return cls(
            token_id=secrets.token_hex(16),
            client_id=client_id,
            refresh_token=secrets.token_hex(32),
            expires_at=created_at + timedelta(seconds=expires_in_seconds),
            created_at=created_at,
            is_revoked=False,
            scope=scope or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RefreshToken":
        return cls(
            token_id=data["token_id"],
            client_id=data["client_id"],
            refresh_token=data["refresh_token"],
            expires_at=data["expires_at"],
            created_at=data["created_at"],
            is_revoked=bool(data.get("is_revoked", False)),
            scope=data.get("scope"),
        )
