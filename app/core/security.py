from __future__ import annotations

import jwt
from datetime import datetime, timedelta, timezone

from app.core.config import settings


class TokenError(Exception):
    pass


# -------------------------
# JWT tokens
# -------------------------
def create_access_token(*, user_id: int, role: str, minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = settings.JWT_ACCESS_MINUTES if minutes is None else minutes
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str) -> dict:
    """Decode an access token; refresh or foreign tokens are rejected."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError("Invalid token") from e

    if payload.get("type", "access") != "access":
        raise TokenError("Not an access token")
    return payload
