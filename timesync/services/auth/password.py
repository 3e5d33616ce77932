import base64
import hashlib
import hmac
import os
from typing import Optional

from timesync.core.config import settings


ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, iterations: Optional[int] = None, salt: Optional[bytes] = None) -> str:
    """
    Hash a room password for storage.

    Returns a ``pbkdf2_sha256$<iterations>$<salt>$<digest>`` string; salt and
    digest are urlsafe base64.
    """
    iterations = iterations or settings.PASSWORD_HASH_ITERATIONS
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join([
        ALGORITHM,
        str(iterations),
        base64.urlsafe_b64encode(salt).decode("ascii"),
        base64.urlsafe_b64encode(digest).decode("ascii"),
    ])


def verify_password(password: str, encoded: Optional[str]) -> bool:
    """Constant-time check of ``password`` against a stored hash."""
    if not encoded:
        return False
    try:
        algorithm, iterations, salt, digest = encoded.split("$")
        salt_bytes = base64.urlsafe_b64decode(salt)
        expected = base64.urlsafe_b64decode(digest)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != ALGORITHM:
        return False

    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt_bytes, rounds)
    return hmac.compare_digest(candidate, expected)
