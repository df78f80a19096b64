"""
interviewmate/core/auth.py — Authentication & Authorization
Bearer JWTs (sub = user id) and bcrypt password hashes.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from interviewmate.config import get_settings
from interviewmate.core.errors import AuthError, ForbiddenError
from interviewmate.models import User, UserRole
from interviewmate.services.users import UserRepository, get_user_repository

security = HTTPBearer(auto_error=False)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


# ──────────────────────────────────────────────────────────────────────────────
# Passwords
# ──────────────────────────────────────────────────────────────────────────────

def _password_bytes(password: str) -> bytes:
    raw = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    # Drop a trailing partial UTF-8 sequence
    while raw and (raw[-1] & 0xC0) == 0x80:
        raw = raw[:-1]
    return raw


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ──────────────────────────────────────────────────────────────────────────────
# Tokens
# ──────────────────────────────────────────────────────────────────────────────

def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> str:
    """Return the user id carried by `token`. Raises AuthError when invalid or expired."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthError("Invalid or expired token") from exc
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token payload")
    return user_id


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def user_id_from_request(request: Request) -> Optional[str]:
    """
    Soft decode used for rate-limit bucketing: a missing or bad token simply
    means the request is anonymous.
    """
    token = _bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    try:
        return decode_token(token)
    except AuthError:
        return None


# ──────────────────────────────────────────────────────────────────────────────
# Dependencies
# ──────────────────────────────────────────────────────────────────────────────

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    users: UserRepository = Depends(get_user_repository),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Access token required")

    user = await users.get(decode_token(credentials.credentials))
    if user is None:
        raise AuthError("User not found")
    if not user.is_active:
        raise AuthError("Account is deactivated")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise ForbiddenError("Admin access required")
    return user
