from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALG, JWT_SECRET

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(
    user_id: str, extra: dict[str, Any] | None = None, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES
) -> str:
    """
    The subject is the user id: the booking core only ever sees this opaque id.
    Timezone-aware datetimes, so the timestamps carry no local offset.
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)

    payload: dict[str, Any] = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def get_user_id(token: str) -> str | None:
    """User id carried by a valid token, None for invalid or expired ones."""
    try:
        return decode_token(token).get("sub")
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        return None
