"""
Token verification for the resource server: verify-only issuer built from the public key,
plus the per-route auth requirements used by main.py.
"""
import logging

from token_server.access_tokens import AccessTokenIssuer
from token_server.guard import RouteAuth, require_auth
from token_server.keys import load_public_key

from resource_server.config import API_AUDIENCE, ISSUER, PUBLIC_KEY_PATH, SCOPE_ADMIN, SCOPE_READ, SCOPE_WRITE

logger = logging.getLogger(__name__)


def build_verifier(public_key_path: str = PUBLIC_KEY_PATH) -> AccessTokenIssuer:
    """Verify-only issuer: no private key, so it can never mint tokens."""
    public_key = load_public_key(public_key_path)
    logger.info("Loaded token verification key from %s", public_key_path)
    return AccessTokenIssuer(None, public_key, issuer=ISSUER, audience=API_AUDIENCE)


READ = RouteAuth(required_scope=SCOPE_READ)
WRITE = RouteAuth(required_scope=SCOPE_WRITE)
ADMIN = RouteAuth(required_scope=SCOPE_ADMIN)
REPORTS = RouteAuth(required_scope=f"{SCOPE_READ} {SCOPE_WRITE}")

RequireRead = require_auth(READ)
RequireWrite = require_auth(WRITE)
RequireAdmin = require_auth(ADMIN)
RequireReports = require_auth(REPORTS)
