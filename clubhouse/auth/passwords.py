"""Password hashing with salted PBKDF2-SHA256."""

from __future__ import annotations

import hashlib
import secrets

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 200_000


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS) -> str:
    """
    Hash a password using PBKDF2-SHA256.

    Returns: "pbkdf2_sha256$<iterations>$<salt>$<hash>" so the cost can be
    raised later without invalidating stored hashes.
    """
    salt = secrets.token_hex(16)
    hash_bytes = hashlib.pbkdf2_hmac(
        'sha256',
        password.encode('utf-8'),
        salt.encode('utf-8'),
        iterations=iterations,
    )
    return f"{ALGORITHM}${iterations}${salt}${hash_bytes.hex()}"


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against its hash in constant time."""
    if not password or not password_hash:
        return False
    try:
        algorithm, iterations, salt, stored_hash = password_hash.split('$')
        if algorithm != ALGORITHM:
            return False
        hash_bytes = hashlib.pbkdf2_hmac(
            'sha256',
            password.encode('utf-8'),
            salt.encode('utf-8'),
            iterations=int(iterations),
        )
        return secrets.compare_digest(hash_bytes.hex(), stored_hash)
    except (ValueError, AttributeError):
        return False
