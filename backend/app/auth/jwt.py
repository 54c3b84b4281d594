"""JWT creation and validation."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bcrypt limits input to 72 bytes; truncate to avoid ValueError
_BCRYPT_MAX_BYTES = 72


def _truncate_for_bcrypt(s: str) -> str:
    """Truncate string to 72 bytes (UTF-8) for bcrypt."""
    b = s.encode("utf-8")[: _BCRYPT_MAX_BYTES]
    return b.decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
    """Hash a password for storage. Passwords longer than 72 bytes are truncated."""
    return pwd_context.hash(_truncate_for_bcrypt(password))


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plain password against a hash."""
    return pwd_context.verify(_truncate_for_bcrypt(plain), hashed)


def _encode(subject: str, token_type: str, expires_delta: timedelta) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire, "type": token_type}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a short-lived access JWT. Subject is the user id."""
    settings = get_settings()
    return _encode(
        subject, "access", expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )


def create_refresh_token(subject: str) -> str:
    """Create a refresh JWT for obtaining new access tokens."""
    settings = get_settings()
    return _encode(subject, "refresh", timedelta(days=settings.refresh_token_expire_days))


def create_download_token(storage_key: str, ttl_seconds: int) -> str:
    """Create a signed download token for an object-store key."""
    return _encode(storage_key, "download", timedelta(seconds=ttl_seconds))


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """Decode and validate a JWT; return payload or None."""
    settings = get_settings()
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None


def _subject_of(token: str, token_type: str) -> Optional[str]:
    payload = decode_token(token)
    if not payload or payload.get("type") != token_type:
        return None
    return payload.get("sub")


def get_subject_from_access(token: str) -> Optional[str]:
    """Return subject (user id) if token is a valid access token."""
    return _subject_of(token, "access")


def get_subject_from_refresh(token: str) -> Optional[str]:
    """Return subject (user id) if token is a valid refresh token."""
    return _subject_of(token, "refresh")


def get_key_from_download_token(token: str) -> Optional[str]:
    """Return the storage key if token is a valid, unexpired download token."""
    return _subject_of(token, "download")
