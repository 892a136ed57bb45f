"""
Security Utilities

One-time code generation, salted code hashing, and password hashing.
"""

import hashlib
import hmac
import secrets

import bcrypt


DEFAULT_CODE_LENGTH = 4
DEFAULT_SALT_BYTES = 16

# bcrypt only reads this many bytes of a password
MAX_PASSWORD_BYTES = 72


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """
    Generate a zero-padded numeric one-time code.

    The value is drawn uniformly from ``[1, 10**length - 1]``, so an
    all-zero code is never produced but a leading ``0`` is possible.

    Args:
        length: Number of digits.

    Returns:
        str: The plaintext code.
    """
    if length < 1:
        raise ValueError("Code length must be at least 1")
    value = secrets.randbelow(10 ** length - 1) + 1
    return str(value).zfill(length)


def generate_salt(nbytes: int = DEFAULT_SALT_BYTES) -> str:
    """Generate a fresh hex-encoded salt."""
    return secrets.token_hex(nbytes)


def hash_code(code: str, salt: str) -> str:
    """
    Hash a one-time code with HMAC-SHA256, keyed by the salt.

    Args:
        code: Plaintext code (the HMAC message).
        salt: Per-issuance salt (the HMAC key).

    Returns:
        str: Hex digest.
    """
    return hmac.new(
        salt.encode("utf-8"),
        code.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def code_matches(code: str, salt: str, stored_hash: str) -> bool:
    """Recompute the hash of ``code`` and compare it in constant time."""
    return hmac.compare_digest(hash_code(code, salt), stored_hash)


def hash_password(password: str) -> str:
    """
    Hash a plain text password using bcrypt.

    Args:
        password: Plain text password to hash.

    Returns:
        str: Hashed password.
    """
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain text password against a hashed password.

    Args:
        plain_password: Plain text password to verify.
        hashed_password: Hashed password to compare against.

    Returns:
        bool: True if passwords match, False otherwise.
    """
    try:
        password_bytes = plain_password.encode('utf-8')
        hashed_bytes = hashed_password.encode('utf-8')
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        return False
