"""
OAuth endpoints under /oauth: token (client_credentials and refresh_token grants), refresh,
verify, revoke, and the development client generator.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from token_server.audit import (
    EVENT_CLIENT_AUTH_FAIL,
    EVENT_REFRESH_FAIL,
    EVENT_TOKEN_ISSUED,
    EVENT_TOKEN_REFRESHED,
    EVENT_TOKEN_REVOKED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
)
from token_server.certificates import get_certificate_fingerprint
from token_server.errors import ClientError, OAuthError, to_http_exception
from token_server.grants import GRANT_CLIENT_CREDENTIALS, GRANT_REFRESH_TOKEN, TokenService
from token_server.rate_limit import enforce_rate_limit
from token_server.schemas import (
    ClientCredentialsResponse,
    RefreshTokenRequest,
    RevokeRequest,
    TokenRequest,
    TokenResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/oauth", dependencies=[Depends(enforce_rate_limit)])


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
FingerprintDep = Annotated[str | None, Depends(get_certificate_fingerprint)]


def _client_credentials(body: TokenRequest, service: TokenService, request: Request, fingerprint: str | None) -> dict:
    ip = get_client_ip(request)
    if not body.client_id or body.client_secret is None:
        raise to_http_exception(ClientError("client_id and client_secret are required"))
    try:
        result = service.generate(
            body.grant_type,
            body.client_id,
            body.client_secret,
            scope=body.scope,
            certificate_fingerprint=fingerprint,
        )
    except OAuthError as e:
        if e.status_code == 401:
            log_audit(EVENT_CLIENT_AUTH_FAIL, client_id=body.client_id, ip=ip, outcome=OUTCOME_FAIL, reason=e.description)
        raise to_http_exception(e)
    log_audit(EVENT_TOKEN_ISSUED, client_id=body.client_id, ip=ip)
    return result.to_dict()


def _refresh(grant_type: str, refresh_token: str | None, scope: str | None, service: TokenService, request: Request) -> dict:
    ip = get_client_ip(request)
    try:
        result = service.refresh(grant_type, refresh_token, scope=scope)
    except OAuthError as e:
        log_audit(EVENT_REFRESH_FAIL, ip=ip, outcome=OUTCOME_FAIL, reason=e.description)
        raise to_http_exception(e)
    log_audit(EVENT_TOKEN_REFRESHED, ip=ip)
    return result.to_dict()


@router.post("/token", response_model=TokenResponse, response_model_exclude_none=True)
def token(body: TokenRequest, request: Request, service: TokenServiceDep, fingerprint: FingerprintDep):
    """
    client_credentials: authenticate the client, validate scope, issue access (+ refresh) token.
    refresh_token: exchange a refresh token (rotated by default).
    """
    if body.grant_type == GRANT_REFRESH_TOKEN:
        return _refresh(body.grant_type, body.refresh_token, body.scope, service, request)
    if body.grant_type != GRANT_CLIENT_CREDENTIALS:
        logger.warning("Unsupported grant type %r on /oauth/token", body.grant_type)
        raise to_http_exception(
            ClientError("Only client_credentials grant type is supported", error="unsupported_grant_type")
        )
    return _client_credentials(body, service, request, fingerprint)


@router.post("/refresh", response_model=TokenResponse, response_model_exclude_none=True)
def refresh(body: RefreshTokenRequest, request: Request, service: TokenServiceDep):
    """Refresh token grant only."""
    return _refresh(body.grant_type, body.refresh_token, body.scope, service, request)


@router.get("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
def verify_get(service: TokenServiceDep, token: str | None = None):
    """Check an access token. Always 200; invalid tokens yield valid=false."""
    return service.verify(token)


@router.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
def verify_post(body: VerifyRequest, service: TokenServiceDep):
    return service.verify(body.token)


@router.post("/revoke")
def revoke(body: RevokeRequest, request: Request, service: TokenServiceDep, fingerprint: FingerprintDep):
    """
    Revoke a refresh token (or all of the client's refresh tokens with revoke_all).
    The client must authenticate. Unknown tokens still return 200 (RFC 7009).
    """
    ip = get_client_ip(request)
    if not body.revoke_all and not body.token:
        raise to_http_exception(ClientError("token is required unless revoke_all is set"))
    try:
        if body.revoke_all:
            count = service.revoke_all_refresh_tokens(body.client_id, body.client_secret, fingerprint)
            log_audit(EVENT_TOKEN_REVOKED, client_id=body.client_id, ip=ip)
            return {"revoked": count}
        service.revoke_refresh_token(body.client_id, body.client_secret, body.token, fingerprint)
    except OAuthError as e:
        if e.status_code == 401:
            log_audit(EVENT_CLIENT_AUTH_FAIL, client_id=body.client_id, ip=ip, outcome=OUTCOME_FAIL, reason=e.description)
        raise to_http_exception(e)
    log_audit(EVENT_TOKEN_REVOKED, client_id=body.client_id, ip=ip)
    return {}


@router.get("/generate-client", response_model=ClientCredentialsResponse)
def generate_client(request: Request, service: TokenServiceDep):
    """Development convenience: random client credentials. Disabled unless enabled in config."""
    if not getattr(request.app.state, "enable_client_generator", False):
        raise HTTPException(status_code=404, detail="Not Found")
    return service.generate_client_credentials()
