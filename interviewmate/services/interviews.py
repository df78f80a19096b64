"""
interviewmate/services/interviews.py — Interview storage, history, analytics, voice setup
History and analytics builders return complete JSON-ready payloads so a cached
copy is indistinguishable from a fresh computation.
"""
from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Optional

from interviewmate.models import (
    CandidateInfo,
    Difficulty,
    Interview,
    InterviewConfiguration,
    InterviewStatus,
    InterviewType,
    VoiceConfig,
)

TREND_DAYS = 30


class InterviewRepository:
    def __init__(self) -> None:
        self._interviews: dict[str, Interview] = {}

    async def add(self, interview: Interview) -> Interview:
        self._interviews[interview.id] = interview
        return interview

    async def get(self, interview_id: str) -> Optional[Interview]:
        return self._interviews.get(interview_id)

    async def get_owned(self, interview_id: str, user_id: str) -> Optional[Interview]:
        """None when missing or owned by someone else; callers cannot tell which."""
        interview = self._interviews.get(interview_id)
        if interview is None or interview.user_id != user_id:
            return None
        return interview

    async def save(self, interview: Interview) -> Interview:
        interview.updated_at = datetime.utcnow()
        self._interviews[interview.id] = interview
        return interview

    async def delete(self, interview_id: str) -> bool:
        return self._interviews.pop(interview_id, None) is not None

    async def list_for_user(
        self,
        user_id: str,
        interview_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Interview]:
        """Newest first."""
        matches = [
            i for i in self._interviews.values()
            if i.user_id == user_id
            and (interview_type is None or i.type.value == interview_type)
            and (status is None or i.status.value == status)
        ]
        return sorted(matches, key=lambda i: i.created_at, reverse=True)

    async def count(self) -> int:
        return len(self._interviews)

    async def count_by_status(self) -> dict[str, int]:
        counts = {s.value: 0 for s in InterviewStatus}
        for interview in self._interviews.values():
            counts[interview.status.value] += 1
        return counts

    def clear(self) -> None:
        self._interviews.clear()


# ──────────────────────────────────────────────────────────────────────────────
# Read models
# ──────────────────────────────────────────────────────────────────────────────

async def query_history(
    repository: InterviewRepository,
    user_id: str,
    page: int = 1,
    limit: int = 10,
    interview_type: Optional[str] = None,
    status: Optional[str] = None,
) -> dict[str, Any]:
    interviews = await repository.list_for_user(user_id, interview_type, status)
    total = len(interviews)
    start = (page - 1) * limit
    return {
        "success": True,
        "interviews": [i.to_json() for i in interviews[start:start + limit]],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0


async def compute_analytics(
    repository: InterviewRepository,
    user_id: str,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    now = now or datetime.utcnow()
    interviews = await repository.list_for_user(user_id)
    completed = [
        i for i in interviews
        if i.status == InterviewStatus.COMPLETED and i.evaluation is not None
    ]

    overview = {
        "totalInterviews": len(interviews),
        "averageScore": _mean([i.evaluation.overall_score for i in interviews if i.evaluation]),
        "totalMinutes": sum(i.configuration.duration for i in interviews),
        "completedInterviews": sum(1 for i in interviews if i.status == InterviewStatus.COMPLETED),
    }

    since = now - timedelta(days=TREND_DAYS)
    by_day: dict[str, list[float]] = defaultdict(list)
    for interview in completed:
        if interview.created_at >= since:
            by_day[interview.created_at.strftime("%Y-%m-%d")].append(interview.evaluation.overall_score)
    trend = [
        {"date": day, "averageScore": _mean(scores), "count": len(scores)}
        for day, scores in sorted(by_day.items())
    ]

    skill_breakdown: dict[str, float] = {}
    if completed:
        dumps = [i.evaluation.skill_scores.to_json() for i in completed]
        skill_breakdown = {
            skill: _mean([d[skill] for d in dumps])
            for skill in dumps[0]
        }

    return {
        "success": True,
        "analytics": {
            "overview": overview,
            "performanceTrend": trend,
            "skillBreakdown": skill_breakdown,
        },
    }


# ──────────────────────────────────────────────────────────────────────────────
# Voice assistant configuration
# ──────────────────────────────────────────────────────────────────────────────

INTERVIEWER_NAMES = {
    InterviewType.HR: "Sarah",
    InterviewType.TECHNICAL: "Alex",
    InterviewType.MANAGERIAL: "Michael",
}
DEFAULT_INTERVIEWER = "Jordan"

_PERSONAS = {
    InterviewType.HR: (
        "warm, empathetic and people-focused, specializing in cultural fit and behavioral evaluation",
        "background, motivations and fit for the role",
    ),
    InterviewType.TECHNICAL: (
        "analytical, curious and technically sharp, specializing in engineering and problem-solving",
        "technical concepts, scenarios and problem-solving",
    ),
    InterviewType.MANAGERIAL: (
        "strategic and composed, specializing in leadership, stakeholder management and decision-making",
        "leadership experience, team management and strategic thinking",
    ),
    InterviewType.CUSTOM: (
        "professional and adaptable, following the candidate's chosen topics",
        "the topics selected for this session",
    ),
}

_DIFFICULTY_GUIDANCE = {
    Difficulty.EASY: "Be supportive and encouraging, ask straightforward questions.",
    Difficulty.MEDIUM: "Balance a supportive approach with thorough questioning.",
    Difficulty.HARD: "Ask challenging follow-up questions and dig deeper into responses.",
}


def interviewer_name(interview_type: InterviewType) -> str:
    return INTERVIEWER_NAMES.get(interview_type, DEFAULT_INTERVIEWER)


def build_voice_config(
    interview_type: InterviewType,
    candidate: CandidateInfo,
    configuration: InterviewConfiguration,
) -> VoiceConfig:
    name = interviewer_name(interview_type)
    persona, focus = _PERSONAS[interview_type]
    topics = ", ".join(configuration.all_topics) or "General"
    skills = ", ".join(candidate.skills) or "not specified"

    first_message = (
        f"Hello {candidate.name}! I'm {name}, your AI interviewer for the {candidate.role} "
        f"position at {candidate.company}. Over the next {configuration.duration} minutes we'll "
        f"talk about your {focus}. Are you ready to begin, {candidate.name}?"
    )

    lines = [
        f"You are {name}, an expert AI interviewer who is {persona}.",
        f"You are conducting a {interview_type.value} interview for {candidate.name}, "
        f"applying for a {candidate.role} position at {candidate.company}.",
        "",
        "CANDIDATE PROFILE:",
        f"Experience Level: {candidate.experience.value}",
        f"Key Skills: {skills}",
        f"Selected Topics: {topics}",
        f"Duration: {configuration.duration} minutes",
        f"Difficulty: {configuration.difficulty.value}",
    ]
    if configuration.custom_questions:
        lines.append(f"Custom Questions: {'; '.join(configuration.custom_questions)}")
    if configuration.job_description:
        lines.append(f"Job Description Context: {configuration.job_description[:300]}")
    lines += [
        "",
        "DIFFICULTY ADJUSTMENT:",
        _DIFFICULTY_GUIDANCE[configuration.difficulty],
        "",
        f'CLOSING: "Thank you for your time, {candidate.name}. You\'ll hear about next steps soon."',
    ]

    return VoiceConfig(
        interviewer_name=name,
        first_message=first_message,
        system_prompt="\n".join(lines),
        voice_provider="elevenlabs",
        voice_id="josh" if interview_type == InterviewType.TECHNICAL else "rachel",
    )


@lru_cache()
def get_interview_repository() -> InterviewRepository:
    return InterviewRepository()
