"""
interviewmate/routers/admin.py — Operator endpoints (admin role required)
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from interviewmate.core.auth import require_admin
from interviewmate.core.cache_manager import ResponseCache, get_response_cache
from interviewmate.core.errors import NotFoundError
from interviewmate.models import GrantCreditsRequest, LedgerCategory, User
from interviewmate.services.evaluation import EvaluationOrchestrator, get_orchestrator
from interviewmate.services.interviews import InterviewRepository, get_interview_repository
from interviewmate.services.ledger import LedgerService, get_ledger
from interviewmate.services.payments import PaymentRepository, get_payment_repository
from interviewmate.services.users import UserRepository, get_user_repository

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/stats")
async def admin_stats(
    users: UserRepository = Depends(get_user_repository),
    interviews: InterviewRepository = Depends(get_interview_repository),
    payments: PaymentRepository = Depends(get_payment_repository),
    cache: ResponseCache = Depends(get_response_cache),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    budget = orchestrator.budget
    return {
        "success": True,
        "stats": {
            "users": {
                "total": await users.count(),
                "byPlan": await users.count_by_plan(),
            },
            "interviews": {
                "total": await interviews.count(),
                "byStatus": await interviews.count_by_status(),
            },
            "payments": {"total": await payments.count()},
            "cache": cache.stats(),
            "evaluationBudget": {
                "used": budget.used,
                "limit": budget.limit,
                "windowSeconds": budget.window_seconds,
                "modelConfigured": orchestrator.client.configured,
            },
        },
    }


@router.post("/users/{user_id}/credits")
async def grant_credits(
    user_id: str,
    body: GrantCreditsRequest,
    users: UserRepository = Depends(get_user_repository),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    if await users.get(user_id) is None:
        raise NotFoundError("User")
    entry = await ledger.add_credit(user_id, body.minutes, LedgerCategory.BONUS, body.description)
    return {
        "success": True,
        "entry": entry.to_json(),
        "balanceMinutes": entry.balance_after,
    }


@router.post("/cache/clear")
async def clear_cache(cache: ResponseCache = Depends(get_response_cache)) -> dict[str, Any]:
    return {"success": True, "removed": cache.clear()}
