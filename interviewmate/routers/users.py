"""
interviewmate/routers/users.py — Profile and per-user stats
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from interviewmate.core.auth import get_current_user
from interviewmate.models import UpdateProfileRequest, User
from interviewmate.services.ledger import LedgerService, get_ledger
from interviewmate.services.users import UserRepository, get_user_repository, update_profile

router = APIRouter()


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"success": True, "user": user.public()}


@router.patch("/profile")
async def patch_profile(
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> dict[str, Any]:
    user = await update_profile(users, user, name=body.name, email=body.email)
    return {"success": True, "user": user.public()}


@router.get("/stats")
async def get_stats(
    user: User = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    return {
        "success": True,
        "plan": user.plan.value,
        "stats": user.stats.to_json(),
        "balanceMinutes": await ledger.get_balance(user.id),
    }
