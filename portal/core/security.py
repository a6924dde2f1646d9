"""Password hashing, password policy and input hygiene helpers."""

import asyncio
import hashlib
import re
from functools import lru_cache

import bcrypt

from portal.core.config import get_settings

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PASSWORD_LENGTH = 8

# Lower-cased substrings that make a password trivially guessable
COMMON_PASSWORD_PATTERNS = (
    "password",
    "passw0rd",
    "123456",
    "12345678",
    "qwerty",
    "abc123",
    "letmein",
    "welcome",
    "iloveyou",
    "admin",
    "monkey",
    "dragon",
)

_REPEATED_CHARACTER = re.compile(r"(.)\1\1")


def _bcrypt_input(password: str) -> bytes:
    """Encode a password for bcrypt.

    bcrypt only accepts up to 72 bytes.
    If longer, pre-hash to 32 bytes (SHA-256) first.
    """
    raw = password.encode("utf-8")
    if len(raw) <= 72:
        return raw
    return hashlib.sha256(raw).digest()


def hash_password_sync(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt using the configured work factor."""
    work_factor = rounds or get_settings().bcrypt_rounds
    salt = bcrypt.gensalt(rounds=work_factor)
    return bcrypt.hashpw(_bcrypt_input(password), salt).decode("utf-8")


def verify_password_sync(password: str, password_hash: str) -> bool:
    """Compare a password against a stored bcrypt hash.

    Malformed hashes compare as a mismatch.
    """
    try:
        return bcrypt.checkpw(_bcrypt_input(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def _dummy_hash(rounds: int) -> str:
    return hash_password_sync("portal-dummy-password", rounds=rounds)


async def hash_password(password: str) -> str:
    """Hash a password on a worker thread so the event loop keeps serving.

    Args:
        password: Plain-text password.

    Returns:
        str: bcrypt hash string.
    """
    return await asyncio.to_thread(hash_password_sync, password)


async def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password on a worker thread.

    Accounts without a hash are checked against a fixed dummy hash of the
    same work factor, so unknown and passwordless accounts take as long to
    reject as a wrong password.

    Args:
        password: Plain-text password supplied by the caller.
        password_hash: Stored hash, or None for accounts without one.

    Returns:
        bool: True only when the hash exists and matches.
    """
    if not password_hash:
        await asyncio.to_thread(verify_password_sync, password, _dummy_hash(get_settings().bcrypt_rounds))
        return False
    return await asyncio.to_thread(verify_password_sync, password, password_hash)


def validate_password_strength(password: str) -> str | None:
    """Check a password against the strength policy.

    The policy requires at least eight characters, a lowercase letter, an
    uppercase letter, a digit, a symbol, and no common pattern.

    Args:
        password: Candidate password.

    Returns:
        str | None: A message describing the first failed rule, or None if
        the password is acceptable.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not re.search(r"[a-z]", password):
        return "Password must contain a lowercase letter"
    if not re.search(r"[A-Z]", password):
        return "Password must contain an uppercase letter"
    if not re.search(r"\d", password):
        return "Password must contain a number"
    if not re.search(r"[^A-Za-z0-9]", password):
        return "Password must contain a symbol"

    lowered = password.lower()
    if any(pattern in lowered for pattern in COMMON_PASSWORD_PATTERNS) or _REPEATED_CHARACTER.search(lowered):
        return "Password is too common or predictable"
    return None


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address."""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    """Check the basic shape of an email address."""
    return bool(email) and len(email) <= 255 and EMAIL_PATTERN.match(email) is not None


def sanitize_input(value: str | None) -> str | None:
    """Trim a free-text value and strip angle brackets.

    Args:
        value: Raw user input.

    Returns:
        str | None: Cleaned value, or None when nothing is left.
    """
    if value is None:
        return None
    cleaned = value.strip().replace("<", "").replace(">", "")
    return cleaned or None


def redact_email(email: str | None) -> str | None:
    """Truncate an email address for logs (first five characters plus ``***``)."""
    if not email:
        return email
    return f"{email[:5]}***"
