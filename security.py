import hashlib
import hmac
import secrets

from config import PASSWORD_HASH_ITERATIONS

HASH_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    """Hash a password with PBKDF2-SHA256 and a random per-password salt"""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{HASH_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against a stored hash in constant time"""
    try:
        scheme, iterations, salt, expected = hashed_password.split("$")
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if scheme != HASH_SCHEME:
        return False

    digest = hashlib.pbkdf2_hmac("sha256", plain_password.encode("utf-8"), salt.encode("utf-8"), rounds)
    return hmac.compare_digest(digest.hex(), expected)
