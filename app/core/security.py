"""Password hashing, random tokens and JWT creation/verification for authentication."""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from app.core.config import settings

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

# Min/max lengths for username and password validation.
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MAX_LEN = 128

# JWT "purpose" claim values.
PURPOSE_SESSION = "session"
PURPOSE_TWO_FACTOR_PENDING = "2fa_pending"


def hash_password(plain_password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str | None) -> bool:
    """Verify a plain password against a stored hash."""
    if not hashed:
        return False
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def generate_reset_token(nbytes: int = 32) -> str:
    """Return a URL-safe random token for password reset links."""
    return secrets.token_urlsafe(nbytes)


def create_access_token(
    claims: dict[str, Any],
    expires_minutes: int | None = None,
    purpose: str = PURPOSE_SESSION,
    now: datetime | None = None,
) -> str:
    """Create a signed JWT carrying claims plus purpose, exp and iat."""
    issued = now or datetime.now(UTC)
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRE_MINUTES
    payload: dict[str, Any] = dict(claims)
    payload.update(
        {
            "purpose": purpose,
            "exp": issued + timedelta(minutes=minutes),
            "iat": issued,
        }
    )
    return jwt.encode(
        payload,
        settings.JWT_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_access_token(token: str, purpose: str = PURPOSE_SESSION) -> dict[str, Any]:
    """
    Decode and validate JWT; return payload.
    Raises jwt.PyJWTError on invalid or expired token, or when the purpose does not match.
    """
    payload = jwt.decode(
        token,
        settings.JWT_SECRET.get_secret_value(),
        algorithms=[settings.JWT_ALGORITHM],
    )
    if payload.get("purpose", PURPOSE_SESSION) != purpose:
        raise jwt.InvalidTokenError("Token purpose mismatch")
    return payload
