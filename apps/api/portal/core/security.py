from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from .config import settings

ALGORITHM = "HS256"


def create_access_token(sub: str, *, role: str | None = None, expires_min: int | None = None) -> str:
    """Token for an authenticated actor. ``sub`` is the user id as a string."""
    now = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_min if expires_min is not None else settings.jwt_expires_min)
    payload: dict[str, Any] = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    # 만료/서명 오류는 jwt.PyJWTError 로 올라온다.
    return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
