"""
Mutual-TLS boundary. The TLS terminator (nginx $ssl_client_escaped_cert, envoy XFCC, ...)
forwards the client certificate as URL-encoded PEM; we only derive its SHA-256 fingerprint.
"""
import logging
from urllib.parse import unquote

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from fastapi import Request

from token_server.config import CLIENT_CERT_HEADER

logger = logging.getLogger(__name__)


def fingerprint_from_pem(pem: str | bytes) -> str:
    """Uppercase hex SHA-256 fingerprint of a PEM certificate (over its DER encoding)."""
    if isinstance(pem, str):
        pem = pem.encode("ascii")
    certificate = x509.load_pem_x509_certificate(pem)
    return certificate.fingerprint(hashes.SHA256()).hex().upper()


def get_certificate_fingerprint(request: Request) -> str | None:
    """
    Dependency: fingerprint of the forwarded client certificate, or None.
    A certificate that cannot be parsed is treated as absent; clients that require one then fail.
    """
    header = getattr(request.app.state, "client_cert_header", CLIENT_CERT_HEADER)
    raw = request.headers.get(header)
    if not raw:
        return None
    try:
        fingerprint = fingerprint_from_pem(unquote(raw))
    except ValueError as e:
        logger.warning("Could not parse forwarded client certificate: %s", e)
        return None
    logger.debug("Client certificate presented: %s", fingerprint)
    return fingerprint
