"""
RSA key pair for signing (private) and verifying (public) access tokens.
Keys are provisioned out of band (see keygen.py) and loaded once at startup; no key material in code.
"""
import base64
import logging
import os
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)

_KEY_BITS = 2048


def generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=_KEY_BITS)


def serialize_private(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def serialize_public(key: rsa.RSAPublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_private_key(path: str | Path) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"{path} does not contain an RSA private key")
    return key


def load_public_key(path: str | Path) -> rsa.RSAPublicKey:
    key = serialization.load_pem_public_key(Path(path).read_bytes())
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError(f"{path} does not contain an RSA public key")
    return key


def write_private_pem(path: str | Path, pem: bytes) -> None:
    """Write a private key file that is never readable by group or others, even briefly."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        if hasattr(os, "fchmod"):
            # O_CREAT mode does not apply to an existing file
            os.fchmod(f.fileno(), 0o600)
        f.write(pem)


def write_key_pair(private_path: str | Path, public_path: str | Path) -> rsa.RSAPrivateKey:
    """Generate a key pair and write both PEM files, creating parent directories."""
    key = generate_private_key()
    private_path, public_path = Path(private_path), Path(public_path)
    private_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.parent.mkdir(parents=True, exist_ok=True)
    write_private_pem(private_path, serialize_private(key))
    public_path.write_bytes(serialize_public(key.public_key()))
    return key


def load_or_create_key_pair(private_path: str, public_path: str | None = None) -> tuple[rsa.RSAPrivateKey, rsa.RSAPublicKey]:
    """
    Load the signing key pair. A missing private key is generated and saved (development);
    a missing public key file is derived from the private key. A public key file that does
    not belong to the private key raises ValueError.
    """
    p = Path(private_path)
    if p.exists():
        private_key = load_private_key(p)
    else:
        logger.warning("Signing key %s not found; generating a new key pair (development only)", private_path)
        private_key = generate_private_key()
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            write_private_pem(p, serialize_private(private_key))
            if public_path:
                Path(public_path).write_bytes(serialize_public(private_key.public_key()))
            logger.info("Generated and saved signing key to %s", private_path)
        except OSError as e:
            logger.warning("Could not save signing key to %s: %s", private_path, e)

    if public_path and Path(public_path).exists():
        public_key = load_public_key(public_path)
        if public_key.public_numbers() != private_key.public_key().public_numbers():
            raise ValueError(f"{public_path} does not match the signing key {private_path}")
    else:
        public_key = private_key.public_key()
    return private_key, public_key


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def public_key_to_jwk(public_key: rsa.RSAPublicKey, kid: str) -> dict:
    """Export RSA public key as a JWK."""
    numbers = public_key.public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "alg": "RS256",
        "use": "sig",
        "n": _b64url_uint(numbers.n),
        "e": _b64url_uint(numbers.e),
    }
