import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any

import bcrypt
import jwt

from portal.config import settings
from portal.errors import AuthenticationError, TokenExpiredError


JWT_SECRET = settings.jwt_secret
if not JWT_SECRET:
    # Fail fast: prevents silent token invalidation across restarts/pods
    raise RuntimeError("JWT_SECRET must be set (do not default-generate it).")

JWT_ALGORITHM = settings.jwt_algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes

PASSWORD_RESET_TOKEN_BYTES = 32


def hash_password(password: str) -> str:
    """Hash password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Verify password against bcrypt hash."""
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash (legacy/plaintext row)
        return False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    now = _utc_now()
    exp = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = dict(data)
    payload.update({"exp": exp, "iat": now, "type": "access"})
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT access token.

    Raises TokenExpiredError for an expired signature so callers can tell a
    lapsed session apart from a forged or malformed token.
    """
    if not token:
        raise AuthenticationError("Missing authentication token")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError()
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid or expired token")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")
    return payload


def generate_reset_token() -> str:
    """Random hex token for password reset links."""
    return secrets.token_hex(PASSWORD_RESET_TOKEN_BYTES)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Some backends (SQLite) hand back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
