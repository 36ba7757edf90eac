"""
Token Server configuration. Values come from the environment; no secrets in this file.
Client credentials come from OAUTH_CLIENTS (JSON) or the development fallback.
"""
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Issuer (iss claim) and API audience (aud claim); public identifiers, not secrets
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")
API_AUDIENCE = os.environ.get("OAUTH_API_AUDIENCE", "http://127.0.0.1:7000")

# Access token lifetime (seconds). Fixed at signing time, never client-supplied.
ACCESS_TOKEN_EXPIRES = int(os.environ.get("OAUTH_ACCESS_TOKEN_EXPIRES", "3600"))

# Refresh tokens: issued with client_credentials, rotated on use, 7 days by default
REFRESH_TOKEN_EXPIRES = int(os.environ.get("OAUTH_REFRESH_TOKEN_EXPIRES", str(7 * 24 * 60 * 60)))
REFRESH_TOKEN_ENABLED = _env_bool("OAUTH_REFRESH_TOKEN_ENABLED", True)
REFRESH_TOKEN_ROTATION = _env_bool("OAUTH_REFRESH_TOKEN_ROTATION", True)

# Interval for the expired refresh token sweep; 0 disables it
REFRESH_TOKEN_SWEEP_SECONDS = int(os.environ.get("OAUTH_REFRESH_TOKEN_SWEEP_SECONDS", "900"))

# JSON array of {"clientId", "clientSecret", "allowedScopes", "certificateFingerprint"?, "requiresCertificate"?}.
# Unset = development mode (any client_id, secret "development"). Never run production without it.
OAUTH_CLIENTS = os.environ.get("OAUTH_CLIENTS", "").strip() or None

# RSA key pair (PEM). Provisioned with `python -m token_server.keygen`; the private key
# is generated and saved here if missing, the public key is derived from it if missing.
SIGNING_KEY_PATH = os.environ.get("OAUTH_SIGNING_KEY_PATH", "keys/private.pem")
PUBLIC_KEY_PATH = os.environ.get("OAUTH_PUBLIC_KEY_PATH", "keys/public.pem")
SIGNING_KEY_ID = os.environ.get("OAUTH_SIGNING_KEY_ID", "token-server-key")

# Rate limiting on /oauth/*: per-IP, per minute (0 disables)
RATE_LIMIT_TOKEN_PER_MINUTE = int(os.environ.get("OAUTH_RATE_LIMIT_TOKEN_PER_MINUTE", "100"))

# Header in which the TLS terminator forwards the client certificate (URL-encoded PEM)
CLIENT_CERT_HEADER = os.environ.get("OAUTH_CLIENT_CERT_HEADER", "x-ssl-client-cert").lower()

# GET /oauth/generate-client is a development convenience: on by default only without OAUTH_CLIENTS
ENABLE_CLIENT_GENERATOR = _env_bool("OAUTH_ENABLE_CLIENT_GENERATOR", OAUTH_CLIENTS is None)

# Scopes advertised by /oauth/info and granted to development clients
SUPPORTED_SCOPES = ("read", "write", "admin")

DEVELOPMENT_CLIENT_SECRET = "development"
