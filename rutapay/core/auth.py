"""
JWT helpers for the API.

Tokens carry only the user id and role; the request dependency re-loads the
user on every call so a deactivated account stops working immediately.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel

from rutapay.core.config import settings
from rutapay.core.logging import get_logger

logger = get_logger(__name__)

# Role spellings accepted in tokens issued by older clients
_ROLE_ALIASES = {
    "administrator": "admin",
    "administrador": "admin",
    "pasajero": "passenger",
    "conductor": "driver",
}


class TokenPayload(BaseModel):
    """Decoded JWT contents"""
    user_id: int
    role: str
    exp: int


def normalize_role(role: str | None) -> str:
    value = (role or "").strip().lower()
    return _ROLE_ALIASES.get(value, value)


def create_access_token(user_id: int, role: str) -> str:
    """Issue an access token for a user"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not configured")
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "user_id": user_id,
        "role": normalize_role(role),
        "exp": int(expire.timestamp()),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.info("JWT token created", extra_data={"user_id": user_id, "role": payload["role"]})
    return encoded


def verify_token(token: str) -> Optional[TokenPayload]:
    """Decode a token; None when invalid, expired or malformed"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty - tokens cannot be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        payload["role"] = normalize_role(payload.get("role"))
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValueError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None
