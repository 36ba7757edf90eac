"""Request and response bodies for the /oauth endpoints."""
from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    grant_type: str = Field(..., min_length=1)
    client_id: str | None = None
    client_secret: str | None = None
    refresh_token: str | None = None
    scope: str | None = None


class RefreshTokenRequest(BaseModel):
    grant_type: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    scope: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    refresh_token: str | None = None
    scope: str | None = None


class VerifyRequest(BaseModel):
    token: str


class TokenInfo(BaseModel):
    client_id: str
    issuer: str
    audience: str
    issued_at: str
    expires_at: str
    scope: str | None = None


class VerifyResponse(BaseModel):
    valid: bool
    payload: TokenInfo | None = None
    error: str | None = None


class ClientCredentialsResponse(BaseModel):
    client_id: str
    client_secret: str


class RevokeRequest(BaseModel):
    client_id: str = Field(..., min_length=1)
    client_secret: str
    token: str | None = None
    revoke_all: bool = False
