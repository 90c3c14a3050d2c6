"""Security utilities for JWT auth and password hashing.

Passwords are hashed with passlib's pbkdf2_sha256 handler. Access tokens are
HS256 JWTs carrying the user id (``sub``) and a session id (``jti``); the
session id is what the user service persists so tokens can be revoked.

Controls:
- Use constant-time comparisons where applicable (passlib does).
- Avoid logging secrets.
- Deterministic, validated token generation.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import jwt  # python-jose (fastapi-compatible)
from passlib.context import CryptContext

from content_api.core.config import get_settings

MIN_PASSWORD_LENGTH = 8

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    """Hash a password securely.

    Raises:
        ValueError: If password policy fails.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return _pwd_context.hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a stored hash. Unknown hash formats never verify."""
    if not password or not hashed or not _pwd_context.identify(hashed):
        return False
    return _pwd_context.verify(password, hashed)


# PUBLIC_INTERFACE
def create_access_token(
    subject: str,
    session_id: str,
    expires_minutes: Optional[int] = None,
) -> tuple[str, datetime]:
    """
    PUBLIC_INTERFACE
    Create a signed JWT access token.

    Args:
        subject: The user identifier.
        session_id: Identifier of the persisted session, stored as ``jti``.
        expires_minutes: TTL override; if None, use settings.

    Returns:
        The compact JWT string and its expiry.
    """
    settings = get_settings()
    exp_minutes = expires_minutes if isinstance(expires_minutes, int) and expires_minutes > 0 else settings.access_token_expire_minutes
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=exp_minutes)
    to_encode: dict[str, Any] = {
        "sub": subject,
        "jti": session_id,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


# PUBLIC_INTERFACE
def decode_token(token: str) -> dict[str, Any]:
    """
    PUBLIC_INTERFACE
    Decode and validate a JWT token, returning claims.

    Raises:
        JWTError: If token is invalid or expired.
    """
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
