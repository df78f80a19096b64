"""
interviewmate/routers/auth.py — Registration, login and current-user endpoints
Guarded by the skip-successful `auth` admission policy: only failed attempts
count toward the limit.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from loguru import logger

from interviewmate.config import get_settings
from interviewmate.core.auth import create_access_token, get_current_user, hash_password, verify_password
from interviewmate.core.errors import AuthError
from interviewmate.models import LedgerCategory, LoginRequest, RegisterRequest, User
from interviewmate.services.ledger import LedgerService, get_ledger
from interviewmate.services.users import UserRepository, get_user_repository

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    users: UserRepository = Depends(get_user_repository),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    user = await users.add(User(
        name=body.name.strip(),
        email=body.email,
        password_hash=hash_password(body.password),
    ))

    bonus = get_settings().signup_bonus_minutes
    if bonus > 0:
        await ledger.add_credit(user.id, bonus, LedgerCategory.BONUS, "Welcome bonus minutes")

    logger.info(f"User registered: {user.id}")
    return {
        "success": True,
        "token": create_access_token(user.id),
        "user": user.public(),
    }


@router.post("/login")
async def login(
    body: LoginRequest,
    users: UserRepository = Depends(get_user_repository),
) -> dict[str, Any]:
    user = await users.get_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated")

    return {
        "success": True,
        "token": create_access_token(user.id),
        "user": user.public(),
    }


@router.get("/me")
async def me(
    user: User = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    return {
        "success": True,
        "user": user.public(),
        "balanceMinutes": await ledger.get_balance(user.id),
    }
