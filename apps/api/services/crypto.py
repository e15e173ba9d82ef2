"""
Credential hashing using PBKDF2 from the cryptography package.
"""

import base64
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings


HASH_SCHEME = "pbkdf2_sha256"
HASH_ITERATIONS = 200000


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )


def _peppered(credential: str) -> bytes:
    return (credential + settings.ENCRYPTION_KEY).encode("utf-8")


def hash_credential(credential: str) -> str:
    """
    Hash a credential for storage in an account record.
    
    Args:
        credential: Plain text password
        
    Returns:
        ``scheme$iterations$salt$digest`` string
    """
    salt = os.urandom(16)
    digest = _kdf(salt, HASH_ITERATIONS).derive(_peppered(credential))
    return "$".join([
        HASH_SCHEME,
        str(HASH_ITERATIONS),
        base64.urlsafe_b64encode(salt).decode(),
        base64.urlsafe_b64encode(digest).decode(),
    ])


def verify_credential(credential: str, stored_hash: str) -> bool:
    """Check a plain credential against a stored hash; malformed hashes never match."""
    try:
        scheme, iterations, salt_b64, digest_b64 = (stored_hash or "").split("$")
        if scheme != HASH_SCHEME:
            return False
        salt = base64.urlsafe_b64decode(salt_b64.encode())
        digest = base64.urlsafe_b64decode(digest_b64.encode())
        _kdf(salt, int(iterations)).verify(_peppered(credential), digest)
    except (ValueError, InvalidKey):
        return False
    return True
