"""
Resource server configuration. Issuer and API audience are public identifiers, not secrets.
Only the token server's public key is needed here.
"""
import os

# Must match the token server's iss / aud claims
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")
API_AUDIENCE = os.environ.get("OAUTH_API_AUDIENCE", "http://127.0.0.1:7000")

# PEM public key written by `python -m token_server.keygen`
PUBLIC_KEY_PATH = os.environ.get("OAUTH_PUBLIC_KEY_PATH", "keys/public.pem")

# Scopes required by protected routes
SCOPE_READ = "read"
SCOPE_WRITE = "write"
SCOPE_ADMIN = "admin"
