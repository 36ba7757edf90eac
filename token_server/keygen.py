"""
One-time provisioning of the RSA signing key pair.

    python -m token_server.keygen --out keys

Writes keys/private.pem (PKCS#8) and keys/public.pem (SubjectPublicKeyInfo).
Keep the private key out of version control; the public key can be shared with resource servers.
"""
import argparse
import logging
import sys
from pathlib import Path

from token_server.keys import serialize_public, write_key_pair

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate the RSA key pair used to sign access tokens.")
    parser.add_argument("--out", default="keys", help="directory for private.pem and public.pem (default: keys)")
    parser.add_argument("--force", action="store_true", help="overwrite existing key files")
    args = parser.parse_args(argv)

    out = Path(args.out)
    private_path = out / "private.pem"
    public_path = out / "public.pem"
    if not args.force and (private_path.exists() or public_path.exists()):
        logger.error("Key files already exist in %s; use --force to overwrite", out)
        return 1

    key = write_key_pair(private_path, public_path)

    print(f"Private key: {private_path}")
    print(f"Public key:  {public_path}")
    print()
    print("Configuration:")
    print(f"OAUTH_SIGNING_KEY_PATH={private_path}")
    print(f"OAUTH_PUBLIC_KEY_PATH={public_path}")
    print()
    print(serialize_public(key.public_key()).decode("ascii"))
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    sys.exit(main())
