import logging
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Cookie, Header
from jose import JWTError, jwt

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.db import dynamo

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.utcnow() + expires_delta})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Not authorized, token failed")


def _extract_token(authorization: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "", 1).strip()
    return cookie_token or None


def get_token_payload(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None),
) -> dict:
    """Resolve the bearer token (header first, then cookie) to its claims."""
    raw_token = _extract_token(authorization, token)
    if not raw_token:
        raise AuthenticationError("Not authorized, no token")

    payload = decode_access_token(raw_token)
    if not payload.get("sub"):
        raise AuthenticationError("Not authorized, token failed")
    return payload


def get_current_user(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None),
) -> dict:
    """FastAPI dependency yielding the authenticated user record."""
    payload = get_token_payload(authorization, token)
    user = dynamo.get_user_by_id(payload["sub"])
    if not user or not user.get("is_active", True):
        logger.warning(f"Token presented for missing or inactive user {payload['sub']}")
        raise AuthenticationError("Not authorized, user not found")
    user["_session_id"] = payload.get("sid")
    return user


def update_current_user(user: dict, updates: Optional[dict] = None, remove=None) -> dict:
    """
    Update the authenticated user's record. Fails like a missing user when the
    account disappeared after the request was authenticated.
    """
    updated = dynamo.update_user(user["user_id"], updates, remove)
    if updated is None:
        logger.warning(f"User {user['user_id']} vanished during the request")
        raise AuthenticationError("Not authorized, user not found")
    updated["_session_id"] = user.get("_session_id")
    return updated
