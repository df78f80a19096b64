"""
interviewmate/routers/interviews.py — Interview lifecycle, history, analytics and AI endpoints
History and analytics are served through the response cache; every write
clears the caller's cached variants. Evaluation always answers 200.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status

from interviewmate.config import get_settings
from interviewmate.core.auth import get_current_user
from interviewmate.core.cache_manager import (
    ResponseCache,
    analytics_key,
    clear_user_cache,
    get_response_cache,
    history_key,
)
from interviewmate.core.errors import NotFoundError
from interviewmate.models import (
    INTERVIEW_DURATIONS,
    CreateInterviewRequest,
    Difficulty,
    EvaluateRequest,
    ExperienceLevel,
    FollowUpRequest,
    GenerateQuestionsRequest,
    Interview,
    InterviewMode,
    InterviewStatus,
    InterviewType,
    LedgerCategory,
    UpdateInterviewRequest,
    User,
)
from interviewmate.services.evaluation import EvaluationOrchestrator, get_orchestrator
from interviewmate.services.interviews import (
    InterviewRepository,
    build_voice_config,
    compute_analytics,
    get_interview_repository,
    query_history,
)
from interviewmate.services.ledger import LedgerService, get_ledger
from interviewmate.services.users import UserRepository, get_user_repository, record_interview_completed

router = APIRouter()


async def _owned_interview(
    interview_id: str,
    user: User,
    interviews: InterviewRepository,
) -> Interview:
    interview = await interviews.get_owned(interview_id, user.id)
    if interview is None:
        raise NotFoundError("Interview")
    return interview


# ──────────────────────────────────────────────────────────────────────────────
# Collection endpoints
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/options")
async def interview_options(
    user: User = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    """Everything the setup form needs in one call."""
    return {
        "success": True,
        "types": [t.value for t in InterviewType],
        "experienceLevels": [e.value for e in ExperienceLevel],
        "difficulties": [d.value for d in Difficulty],
        "durations": INTERVIEW_DURATIONS,
        "modes": [m.value for m in InterviewMode],
        "plan": user.plan.value,
        "balanceMinutes": await ledger.get_balance(user.id),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_interview(
    body: CreateInterviewRequest,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    ledger: LedgerService = Depends(get_ledger),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    interview = Interview(
        user_id=user.id,
        type=body.type,
        mode=body.mode,
        candidate_info=body.candidate_info,
        configuration=body.configuration,
        voice_config=build_voice_config(body.type, body.candidate_info, body.configuration),
    )

    # Paid voice mode: the debit must succeed before anything is stored
    if body.mode == InterviewMode.VAPI:
        minutes = body.configuration.duration
        await ledger.add_debit(
            user.id,
            minutes,
            LedgerCategory.USAGE,
            f"Voice interview ({minutes} min)",
            related_id=interview.id,
        )
        interview.minutes_charged = minutes

    await interviews.add(interview)
    clear_user_cache(cache, user.id)
    return {"success": True, "interview": interview.to_json()}


@router.get("/history")
async def interview_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    type: Optional[InterviewType] = None,
    status: Optional[InterviewStatus] = None,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    type_value = type.value if type else None
    status_value = status.value if status else None
    return await cache.remember(
        history_key(user.id, page, limit, type_value, status_value),
        get_settings().history_cache_ttl_seconds,
        lambda: query_history(interviews, user.id, page, limit, type_value, status_value),
    )


@router.get("/analytics")
async def interview_analytics(
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    return await cache.remember(
        analytics_key(user.id),
        get_settings().analytics_cache_ttl_seconds,
        lambda: compute_analytics(interviews, user.id),
    )


@router.post("/generate-questions")
async def generate_questions(
    body: GenerateQuestionsRequest,
    _user: User = Depends(get_current_user),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    questions, used_fallback = await orchestrator.generate_questions(
        body.job_description, body.difficulty.value, body.count,
    )
    response: dict[str, Any] = {
        "success": True,
        "questions": [q.to_json() for q in questions],
        "fallback": used_fallback,
    }
    if used_fallback:
        response["message"] = "Using fallback questions due to AI service unavailability"
    return response


@router.post("/generate-followup")
async def generate_followup(
    body: FollowUpRequest,
    _user: User = Depends(get_current_user),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    text, used_fallback = await orchestrator.generate_follow_up(body.prompt)
    return {"success": True, "text": text, "fallback": used_fallback}


# ──────────────────────────────────────────────────────────────────────────────
# Single interview
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/{interview_id}")
async def get_interview(
    interview_id: str,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
) -> dict[str, Any]:
    interview = await _owned_interview(interview_id, user, interviews)
    return {
        "success": True,
        "interview": interview.to_json(),
        "performanceGrade": interview.performance_grade,
    }


@router.patch("/{interview_id}")
async def update_interview(
    interview_id: str,
    body: UpdateInterviewRequest,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    interview = await _owned_interview(interview_id, user, interviews)

    now = datetime.utcnow()
    if body.status is not None:
        interview.status = body.status
        if body.status == InterviewStatus.IN_PROGRESS and interview.session.start_time is None:
            interview.session.start_time = now
        elif body.status in (InterviewStatus.COMPLETED, InterviewStatus.CANCELLED):
            interview.session.end_time = now
    if body.transcript is not None:
        interview.session.transcript = body.transcript

    await interviews.save(interview)
    clear_user_cache(cache, user.id)
    return {"success": True, "interview": interview.to_json()}


@router.delete("/{interview_id}")
async def delete_interview(
    interview_id: str,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    interview = await _owned_interview(interview_id, user, interviews)
    await interviews.delete(interview.id)
    clear_user_cache(cache, user.id)
    return {"success": True, "message": "Interview deleted"}


@router.post("/{interview_id}/evaluate")
async def evaluate_interview(
    interview_id: str,
    body: EvaluateRequest,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    users: UserRepository = Depends(get_user_repository),
    cache: ResponseCache = Depends(get_response_cache),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Upstream model failures never reach the caller: the response carries a
    fallback evaluation and `fallback: true` instead.
    """
    interview = await _owned_interview(interview_id, user, interviews)

    outcome = await orchestrator.evaluate(interview, body.transcript)

    now = datetime.utcnow()
    interview.evaluation = outcome.result
    interview.fallback_reason = outcome.reason if outcome.is_fallback else None
    interview.status = InterviewStatus.COMPLETED
    interview.session.transcript = body.transcript
    interview.session.end_time = now
    if interview.session.start_time is None:
        interview.session.start_time = interview.created_at
    await interviews.save(interview)

    await record_interview_completed(
        users, user.id, outcome.result.overall_score, interview.configuration.duration,
    )
    clear_user_cache(cache, user.id)

    return {
        "success": True,
        "interview": interview.to_json(),
        "evaluation": outcome.result.to_json(),
        "fallback": outcome.is_fallback,
        "fallbackReason": outcome.reason.value if outcome.is_fallback else None,
        "message": (
            "Interview evaluated with fallback system. AI evaluation temporarily unavailable."
            if outcome.is_fallback
            else "Interview evaluated successfully"
        ),
    }
