"""
Shared authentication utilities for staff and temp-permission access.
Staff get a bearer JWT carrying user id and role; a student editing
their own form gets a short-lived temp_permission JWT scoped to one id.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt as _bcrypt
from jose import JWTError, jwt

from settings import Settings

TEMP_PERMISSION_TYPE = "temp_permission"


# ─── Password helpers ─────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return _bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


# ─── Token helpers ─────────────────────────────────────────────────────────────

def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """Decode a JWT token. Returns payload dict or None if invalid/expired."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except (JWTError, ValueError, TypeError):
        return None


def create_temp_permission_token(student_id: int, settings: Settings, expires_in: Optional[int] = None) -> str:
    seconds = expires_in or settings.temp_permission_default_seconds
    return create_access_token(
        {"student_id": student_id, "type": TEMP_PERMISSION_TYPE},
        settings,
        expires_delta=timedelta(seconds=seconds),
    )


def decode_temp_permission(token: str, settings: Settings) -> Optional[dict]:
    """Payload of a valid temp_permission token, or None."""
    payload = decode_token(token, settings)
    if not payload or payload.get("type") != TEMP_PERMISSION_TYPE:
        return None
    try:
        payload["student_id"] = int(payload["student_id"])
    except (KeyError, TypeError, ValueError):
        return None
    return payload
