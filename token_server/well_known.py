"""
Discovery endpoints: GET /oauth/info and the JWKS for signature verification.
"""
from fastapi import APIRouter, Request

from token_server.config import SUPPORTED_SCOPES
from token_server.grants import GRANT_CLIENT_CREDENTIALS, GRANT_REFRESH_TOKEN
from token_server.keys import public_key_to_jwk

router = APIRouter()


@router.get("/.well-known/jwks.json")
def jwks_json(request: Request):
    """JSON Web Key Set with the current signing key's public half."""
    issuer = request.app.state.token_service.issuer
    return {"keys": [public_key_to_jwk(issuer.public_key, issuer.kid or "default")]}


@router.get("/oauth/info")
def oauth_info(request: Request):
    """Static discovery document."""
    issuer = request.app.state.token_service.issuer.issuer
    return {
        "issuer": issuer,
        "token_endpoint": "/oauth/token",
        "refresh_endpoint": "/oauth/refresh",
        "verification_endpoint": "/oauth/verify",
        "revocation_endpoint": "/oauth/revoke",
        "jwks_uri": "/.well-known/jwks.json",
        "supported_grant_types": [GRANT_CLIENT_CREDENTIALS, GRANT_REFRESH_TOKEN],
        "supported_scopes": list(SUPPORTED_SCOPES),
        "token_endpoint_auth_methods": ["client_secret_post"],
        "token_signing_alg_values_supported": ["RS256"],
    }
