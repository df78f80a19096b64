"""
interviewmate/services/evaluation.py — AI interview evaluation with guaranteed fallback

Per call:
  1. Budget check: internal counter (10 calls / rolling 60 s from last reset);
     exhausted → fallback without calling the model.
  2. Invoke: structured prompt (interview metadata + transcript) via Gemini.
  3. Parse: first JSON object in the free-text reply; none → fallback.
  4. Repair: EvaluationPayload coerces, clamps and truncates every field and
     badges are re-derived from the clamped scores.
  5. Fallback: fixed baseline evaluation, modelIdentifier "fallback".

Upstream failures (missing key, quota, timeout, API errors) always end in a
FallbackEvaluation; any other exception propagates.
"""
from __future__ import annotations

import re
import time
from functools import lru_cache
from typing import Any, Callable, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from interviewmate.clients.gemini_client import GeminiClient, classify_error, get_gemini_client
from interviewmate.config import get_settings
from interviewmate.core import logging as app_logging
from interviewmate.models import (
    EvaluationResult,
    FallbackEvaluation,
    FallbackReason,
    Interview,
    Question,
    RealEvaluation,
    SkillScores,
)
from interviewmate.utils.validators import (
    coerce_score,
    extract_json_array,
    extract_json_object,
    string_list,
)

FALLBACK_MODEL_IDENTIFIER = "fallback"

DEFAULT_OVERALL_SCORE = 75.0
DEFAULT_SKILL_SCORES = {
    "communication": 75.0,
    "technical_knowledge": 70.0,
    "problem_solving": 75.0,
    "confidence": 70.0,
    "clarity": 75.0,
    "behavioral": 75.0,
}

MAX_STRENGTHS = 5
MAX_WEAKNESSES = 4
MAX_RECOMMENDATIONS = 5

DEFAULT_STRENGTHS = [
    "Participated actively in the interview",
    "Provided thoughtful responses",
]
DEFAULT_WEAKNESSES = ["Could provide more specific examples"]
DEFAULT_RECOMMENDATIONS = [
    "Continue practicing interview skills",
    "Prepare more specific examples from experience",
]
DEFAULT_FEEDBACK = (
    "The candidate demonstrated good interview skills with room for improvement "
    "in providing more specific examples and demonstrating deeper knowledge in key areas."
)

SKILL_BADGES = {
    "communication": "Excellent Communicator",
    "technical_knowledge": "Technical Expert",
    "problem_solving": "Problem Solver",
    "confidence": "Confident Leader",
    "clarity": "Clear Thinker",
    "behavioral": "Cultural Fit",
}
SKILL_BADGE_THRESHOLD = 85.0
OUTSTANDING_BADGE = "Outstanding Performance"
OUTSTANDING_THRESHOLD = 90.0

FALLBACK_QUESTIONS = [
    Question(question="Tell me about yourself and your background.", type="behavioral"),
    Question(question="Why are you interested in this role?", type="behavioral"),
    Question(question="What are your greatest strengths?", type="behavioral"),
    Question(question="Describe a challenging situation you faced and how you handled it.", type="behavioral"),
    Question(question="Where do you see yourself in 5 years?", type="behavioral"),
    Question(question="What motivates you in your work?", type="behavioral"),
    Question(question="How do you handle stress and pressure?", type="behavioral"),
    Question(question="Describe your ideal work environment.", type="behavioral"),
]


# ──────────────────────────────────────────────────────────────────────────────
# Internal request budget
# ──────────────────────────────────────────────────────────────────────────────

class ModelRequestBudget:
    """
    Caps outbound model calls. The window restarts from the last reset,
    not from wall-clock minute boundaries.
    """

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._count = 0
        self._last_reset = clock()

    def _maybe_reset(self) -> None:
        now = self._clock()
        if now - self._last_reset >= self.window_seconds:
            self._count = 0
            self._last_reset = now

    def available(self) -> bool:
        self._maybe_reset()
        return self._count < self.limit

    def record(self) -> None:
        """Count one successful external call."""
        self._maybe_reset()
        self._count += 1

    @property
    def used(self) -> int:
        self._maybe_reset()
        return self._count


# ──────────────────────────────────────────────────────────────────────────────
# Model output schema (repairing)
# ──────────────────────────────────────────────────────────────────────────────

class _PayloadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SkillScoresPayload(_PayloadModel):
    communication: float = DEFAULT_SKILL_SCORES["communication"]
    technical_knowledge: float = DEFAULT_SKILL_SCORES["technical_knowledge"]
    problem_solving: float = DEFAULT_SKILL_SCORES["problem_solving"]
    confidence: float = DEFAULT_SKILL_SCORES["confidence"]
    clarity: float = DEFAULT_SKILL_SCORES["clarity"]
    behavioral: float = DEFAULT_SKILL_SCORES["behavioral"]

    @field_validator("*", mode="before")
    @classmethod
    def repair_score(cls, v: Any, info) -> float:
        return coerce_score(v, DEFAULT_SKILL_SCORES[info.field_name])


class EvaluationPayload(_PayloadModel):
    """
    Whatever JSON object the model returned, validated into a structure that
    already satisfies the score and list bounds. Model-supplied badges are
    ignored; see derive_badges().
    """

    overall_score: float = DEFAULT_OVERALL_SCORE
    skill_scores: SkillScoresPayload = Field(default_factory=SkillScoresPayload)
    strengths: list[str] = Field(default_factory=lambda: list(DEFAULT_STRENGTHS))
    weaknesses: list[str] = Field(default_factory=lambda: list(DEFAULT_WEAKNESSES))
    recommendations: list[str] = Field(default_factory=lambda: list(DEFAULT_RECOMMENDATIONS))
    detailed_feedback: str = DEFAULT_FEEDBACK

    @field_validator("overall_score", mode="before")
    @classmethod
    def repair_overall(cls, v: Any) -> float:
        return coerce_score(v, DEFAULT_OVERALL_SCORE)

    @field_validator("skill_scores", mode="before")
    @classmethod
    def repair_skills(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    @field_validator("strengths", mode="before")
    @classmethod
    def repair_strengths(cls, v: Any) -> list[str]:
        return string_list(v, DEFAULT_STRENGTHS, MAX_STRENGTHS)

    @field_validator("weaknesses", mode="before")
    @classmethod
    def repair_weaknesses(cls, v: Any) -> list[str]:
        return string_list(v, DEFAULT_WEAKNESSES, MAX_WEAKNESSES)

    @field_validator("recommendations", mode="before")
    @classmethod
    def repair_recommendations(cls, v: Any) -> list[str]:
        return string_list(v, DEFAULT_RECOMMENDATIONS, MAX_RECOMMENDATIONS)

    @field_validator("detailed_feedback", mode="before")
    @classmethod
    def repair_feedback(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip():
            return v.strip()
        return DEFAULT_FEEDBACK

    def to_result(self, model_identifier: str) -> EvaluationResult:
        skills = SkillScores(**self.skill_scores.model_dump())
        return EvaluationResult(
            overall_score=self.overall_score,
            skill_scores=skills,
            strengths=self.strengths,
            weaknesses=self.weaknesses,
            recommendations=self.recommendations,
            detailed_feedback=self.detailed_feedback,
            badges=derive_badges(self.overall_score, skills),
            model_identifier=model_identifier,
        )


def derive_badges(overall_score: float, skills: SkillScores) -> list[str]:
    badges = [
        badge for field, badge in SKILL_BADGES.items()
        if getattr(skills, field) >= SKILL_BADGE_THRESHOLD
    ]
    if overall_score >= OUTSTANDING_THRESHOLD:
        badges.append(OUTSTANDING_BADGE)
    return list(dict.fromkeys(badges))


def fallback_evaluation() -> EvaluationResult:
    return EvaluationResult(
        overall_score=DEFAULT_OVERALL_SCORE,
        skill_scores=SkillScores(**DEFAULT_SKILL_SCORES),
        strengths=[
            "Participated actively in the interview",
            "Provided thoughtful responses",
            "Demonstrated good communication skills",
        ],
        weaknesses=[
            "Could provide more specific examples",
            "Room for improvement in technical depth",
        ],
        recommendations=[
            "Practice with more specific examples from your experience",
            "Research common interview questions for your field",
            "Work on providing more detailed technical explanations",
        ],
        detailed_feedback=(
            "The candidate demonstrated solid interview skills with good communication "
            "and engagement. There are opportunities to improve by providing more specific "
            "examples and demonstrating deeper technical knowledge. Overall, a positive "
            "interview performance with clear areas for growth."
        ),
        badges=[],
        model_identifier=FALLBACK_MODEL_IDENTIFIER,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Prompts
# ──────────────────────────────────────────────────────────────────────────────

def build_evaluation_prompt(interview: Interview, transcript: str) -> str:
    info = interview.candidate_info
    config = interview.configuration
    topics = ", ".join(config.all_topics) or "General"
    interview_type = interview.type.value

    return f"""
You are an expert interview evaluator. Analyze this {interview_type} interview transcript and provide a comprehensive evaluation.

INTERVIEW CONTEXT:
- Type: {interview_type.capitalize()} Interview
- Role: {info.role}
- Company: {info.company}
- Experience Level: {info.experience.value}
- Duration: {config.duration} minutes
- Difficulty: {config.difficulty.value}
- Focus Topics: {topics}

TRANSCRIPT:
{transcript}

Respond with ONLY a JSON object in this exact format:
{{
  "overallScore": <number 0-100>,
  "skillScores": {{
    "communication": <number 0-100>,
    "technicalKnowledge": <number 0-100>,
    "problemSolving": <number 0-100>,
    "confidence": <number 0-100>,
    "clarity": <number 0-100>,
    "behavioral": <number 0-100>
  }},
  "strengths": [<3-5 specific strengths>],
  "weaknesses": [<2-4 areas for improvement>],
  "recommendations": [<3-5 actionable recommendations>],
  "detailedFeedback": "<200-300 word feedback>",
  "badges": [<achievement badges>]
}}

SCORING GUIDELINES:
- 90-100: Exceptional performance, exceeds expectations
- 80-89: Strong performance, meets and often exceeds expectations
- 70-79: Good performance, meets most expectations
- 60-69: Adequate performance, meets basic expectations
- Below 60: Needs improvement

BADGES (award for scores >= 85 in specific areas):
- "Excellent Communicator" (communication >= 85)
- "Technical Expert" (technicalKnowledge >= 85)
- "Problem Solver" (problemSolving >= 85)
- "Confident Leader" (confidence >= 85)
- "Clear Thinker" (clarity >= 85)
- "Cultural Fit" (behavioral >= 85)
- "Outstanding Performance" (overallScore >= 90)

Be constructive, specific, and actionable.
""".strip()


def build_questions_prompt(job_description: str, difficulty: str, count: int) -> str:
    return f"""
Generate {count} interview questions for the following job description.
Difficulty level: {difficulty}

Job Description:
{job_description}

The questions must be relevant to the role, appropriate for {difficulty} difficulty,
a mix of technical and behavioral, and clear and concise.

Respond with ONLY a JSON array of objects with "question" and "type" fields.
Example: [{{"question": "What is your experience with...", "type": "technical"}}]
""".strip()


_NUMBERED_QUESTION = re.compile(r"^\s*(?:\d+[.)]|[-•*])\s*(.+\?)\s*$", re.MULTILINE)


def parse_questions(text: str, count: int) -> list[Question]:
    """JSON array first, then numbered/bulleted lines ending in '?'."""
    items = extract_json_array(text)
    questions: list[Question] = []
    if items is not None:
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("question"), str) and item["question"].strip():
                q_type = item.get("type") if isinstance(item.get("type"), str) else "behavioral"
                questions.append(Question(question=item["question"].strip(), type=q_type))
            elif isinstance(item, str) and item.strip():
                questions.append(Question(question=item.strip()))
    if not questions:
        questions = [Question(question=m.strip()) for m in _NUMBERED_QUESTION.findall(text or "")]
    return questions[:count]


# ──────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ──────────────────────────────────────────────────────────────────────────────

class EvaluationOrchestrator:
    def __init__(self, client: GeminiClient, budget: ModelRequestBudget) -> None:
        self.client = client
        self.budget = budget

    def _fallback(self, interview_id: Optional[str], reason: FallbackReason) -> FallbackEvaluation:
        result = fallback_evaluation()
        app_logging.log_evaluation(
            interview_id=interview_id,
            model_identifier=result.model_identifier,
            overall_score=result.overall_score,
            fallback_reason=reason.value,
        )
        return FallbackEvaluation(result=result, reason=reason)

    async def _call_model(self, prompt: str, operation: str) -> Union[str, FallbackReason]:
        """Model text, or the reason the call could not be made or failed upstream."""
        if not self.client.configured:
            return FallbackReason.NOT_CONFIGURED
        if not self.budget.available():
            logger.warning(f"Model request budget exhausted; skipping {operation}")
            return FallbackReason.BUDGET_EXHAUSTED

        try:
            text = await self.client.generate(prompt, operation=operation, budget_used=self.budget.used)
        except Exception as exc:
            reason = classify_error(exc)
            if reason is None:
                raise
            logger.warning(f"Gemini {operation} failed ({reason.value}): {exc}")
            return reason

        self.budget.record()
        return text

    async def evaluate(
        self,
        interview: Interview,
        transcript: str,
    ) -> Union[RealEvaluation, FallbackEvaluation]:
        """Always returns a usable evaluation for upstream failures."""
        text = await self._call_model(build_evaluation_prompt(interview, transcript), "evaluate_interview")
        if isinstance(text, FallbackReason):
            return self._fallback(interview.id, text)

        data = extract_json_object(text)
        if data is None:
            return self._fallback(interview.id, FallbackReason.MALFORMED_RESPONSE)
        try:
            payload = EvaluationPayload.model_validate(data)
        except ValidationError as exc:
            logger.warning(f"Evaluation payload failed validation: {exc}")
            return self._fallback(interview.id, FallbackReason.MALFORMED_RESPONSE)

        result = payload.to_result(model_identifier=self.client.model)
        app_logging.log_evaluation(
            interview_id=interview.id,
            model_identifier=result.model_identifier,
            overall_score=result.overall_score,
        )
        return RealEvaluation(result=result)

    async def generate_questions(
        self,
        job_description: str,
        difficulty: str = "medium",
        count: int = 5,
    ) -> tuple[list[Question], bool]:
        """Returns (questions, used_fallback)."""
        text = await self._call_model(
            build_questions_prompt(job_description, difficulty, count), "generate_questions",
        )
        if not isinstance(text, FallbackReason):
            questions = parse_questions(text, count)
            if questions:
                return questions, False
            logger.warning("No questions could be parsed from model output")
        return [q.model_copy() for q in FALLBACK_QUESTIONS[:count]], True

    async def generate_follow_up(self, prompt: str) -> tuple[str, bool]:
        """Returns (text, used_fallback); the fallback text is empty."""
        text = await self._call_model(prompt, "generate_followup")
        if isinstance(text, FallbackReason) or not text:
            return "", True
        return text, False


@lru_cache()
def get_orchestrator() -> EvaluationOrchestrator:
    settings = get_settings()
    return EvaluationOrchestrator(
        get_gemini_client(),
        ModelRequestBudget(
            limit=settings.evaluation_budget_per_minute,
            window_seconds=settings.evaluation_budget_window_seconds,
        ),
    )
