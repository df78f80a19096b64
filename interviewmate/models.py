"""
interviewmate/models.py — All Pydantic data schemas
Wire format is camelCase (alias generator); Python attributes stay snake_case.
"""
from __future__ import annotations

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return uuid.uuid4().hex


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class InterviewType(str, Enum):
    HR = "hr"
    TECHNICAL = "technical"
    MANAGERIAL = "managerial"
    CUSTOM = "custom"


class InterviewStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExperienceLevel(str, Enum):
    FRESHER = "fresher"
    MID_LEVEL = "mid-level"
    SENIOR = "senior"
    EXECUTIVE = "executive"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class InterviewMode(str, Enum):
    WEBSPEECH = "webspeech"   # browser speech-to-text, free
    VAPI = "vapi"             # hosted voice assistant, billed per minute


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"


class LedgerEntryType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerCategory(str, Enum):
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"
    BONUS = "bonus"
    MONTHLY_CREDIT = "monthly_credit"


class ReportStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class SharePlatform(str, Enum):
    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    EMAIL = "email"


class FallbackReason(str, Enum):
    NOT_CONFIGURED = "not_configured"
    BUDGET_EXHAUSTED = "budget_exhausted"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    MALFORMED_RESPONSE = "malformed_response"


INTERVIEW_DURATIONS = [5, 10, 15, 30, 45, 60]


# ──────────────────────────────────────────────────────────────────────────────
# Evaluation
# ──────────────────────────────────────────────────────────────────────────────

class SkillScores(CamelModel):
    communication: float = Field(ge=0, le=100)
    technical_knowledge: float = Field(ge=0, le=100)
    problem_solving: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=100)
    clarity: float = Field(ge=0, le=100)
    behavioral: float = Field(ge=0, le=100)


class EvaluationResult(CamelModel):
    overall_score: float = Field(ge=0, le=100)
    skill_scores: SkillScores
    strengths: list[str] = []
    weaknesses: list[str] = []
    recommendations: list[str] = []
    detailed_feedback: str = ""
    badges: list[str] = []
    evaluated_at: datetime = Field(default_factory=datetime.utcnow)
    model_identifier: str

    @field_validator("badges")
    @classmethod
    def dedupe_badges(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class RealEvaluation(CamelModel):
    kind: Literal["real"] = "real"
    result: EvaluationResult

    @property
    def is_fallback(self) -> bool:
        return False


class FallbackEvaluation(CamelModel):
    kind: Literal["fallback"] = "fallback"
    result: EvaluationResult
    reason: FallbackReason

    @property
    def is_fallback(self) -> bool:
        return True


EvaluationOutcome = Annotated[
    Union[RealEvaluation, FallbackEvaluation],
    Field(discriminator="kind"),
]


class Question(CamelModel):
    question: str
    type: str = "behavioral"


# ──────────────────────────────────────────────────────────────────────────────
# Interview
# ──────────────────────────────────────────────────────────────────────────────

class CandidateInfo(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    role: str = Field(min_length=1, max_length=100)
    company: str = Field(min_length=1, max_length=100)
    experience: ExperienceLevel
    skills: list[str] = []

    @field_validator("name", "role", "company")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class InterviewConfiguration(CamelModel):
    duration: int = Field(ge=5, le=60)
    difficulty: Difficulty
    topics: list[str] = []
    custom_topics: list[str] = []
    custom_questions: list[str] = []
    job_description: Optional[str] = None
    language: str = "en"

    @property
    def all_topics(self) -> list[str]:
        return [*self.topics, *self.custom_topics]


class VoiceConfig(CamelModel):
    interviewer_name: str
    first_message: str
    system_prompt: str
    voice_provider: str = "elevenlabs"
    voice_id: str = "rachel"


class InterviewSession(CamelModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    transcript: str = ""


class Interview(CamelModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    type: InterviewType
    status: InterviewStatus = InterviewStatus.CREATED
    mode: InterviewMode = InterviewMode.WEBSPEECH
    candidate_info: CandidateInfo
    configuration: InterviewConfiguration
    voice_config: Optional[VoiceConfig] = None
    session: InterviewSession = Field(default_factory=InterviewSession)
    evaluation: Optional[EvaluationResult] = None
    fallback_reason: Optional[FallbackReason] = None
    minutes_charged: float = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def performance_grade(self) -> str:
        return grade_for(self.evaluation)


def grade_for(evaluation: Optional[EvaluationResult]) -> str:
    if evaluation is None:
        return "N/A"
    score = evaluation.overall_score
    if score >= 90:
        return "A+"
    if score >= 80:
        return "A"
    if score >= 70:
        return "B"
    if score >= 60:
        return "C"
    return "D"


# ──────────────────────────────────────────────────────────────────────────────
# Report
# ──────────────────────────────────────────────────────────────────────────────

class InterviewDetails(CamelModel):
    type: InterviewType
    duration: int
    difficulty: Difficulty
    date: datetime


class ReportData(CamelModel):
    """Snapshot taken at generation time; later edits to the interview do not leak in."""

    candidate_info: CandidateInfo
    interview_details: InterviewDetails
    evaluation: EvaluationResult


class ShareRecord(CamelModel):
    platform: SharePlatform
    url: str
    shared_at: datetime = Field(default_factory=datetime.utcnow)


class ReportSharing(CamelModel):
    is_public: bool = False
    # Kept after unsharing so a re-share reuses the same link
    public_slug: Optional[str] = None
    shared_on: list[ShareRecord] = []
    views: int = 0
    last_viewed: Optional[datetime] = None


class Report(CamelModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    interview_id: str
    status: ReportStatus = ReportStatus.COMPLETED
    data: ReportData
    sharing: ReportSharing = Field(default_factory=ReportSharing)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def performance_grade(self) -> str:
        return grade_for(self.data.evaluation)

    def to_json(self) -> dict:
        return {**super().to_json(), "performanceGrade": self.performance_grade}

    def public(self) -> dict:
        """What an anonymous viewer of a shared link sees."""
        payload = self.to_json()
        payload.pop("userId")
        payload["sharing"].pop("sharedOn")
        return payload


# ──────────────────────────────────────────────────────────────────────────────
# User
# ──────────────────────────────────────────────────────────────────────────────

class UserStats(CamelModel):
    total_interviews: int = 0
    total_minutes_used: float = 0
    average_score: float = 0
    last_interview_date: Optional[datetime] = None


class User(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    password_hash: str
    role: UserRole = UserRole.USER
    plan: Plan = Plan.FREE
    is_active: bool = True
    stats: UserStats = Field(default_factory=UserStats)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def public(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"password_hash"})


# ──────────────────────────────────────────────────────────────────────────────
# Ledger
# ──────────────────────────────────────────────────────────────────────────────

class LedgerEntry(CamelModel):
    """Append-only; never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    transaction_id: str
    type: LedgerEntryType
    category: LedgerCategory
    minutes: float = Field(gt=0)
    amount_usd: float = 0
    description: str
    related_id: Optional[str] = None
    balance_after: float
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def signed_minutes(self) -> float:
        return self.minutes if self.type == LedgerEntryType.CREDIT else -self.minutes


# ──────────────────────────────────────────────────────────────────────────────
# Payment
# ──────────────────────────────────────────────────────────────────────────────

class PaymentOrder(CamelModel):
    """A gateway order as created for one user; the source of truth for what a payment is worth."""

    order_id: str
    user_id: str
    amount: float
    currency: str = "INR"
    plan: Plan = Plan.PRO
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PaymentRecord(CamelModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    order_id: str
    payment_id: str
    amount: float
    currency: str = "INR"
    plan: Plan = Plan.PRO
    minutes_added: float = 0
    status: str = "completed"
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# API Request models
# ──────────────────────────────────────────────────────────────────────────────

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RegisterRequest(CamelModel):
    name: str = Field(min_length=2, max_length=50)
    email: str
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email")
        return v


class LoginRequest(CamelModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class CreateInterviewRequest(CamelModel):
    type: InterviewType
    candidate_info: CandidateInfo
    configuration: InterviewConfiguration
    mode: InterviewMode = InterviewMode.WEBSPEECH


class UpdateInterviewRequest(CamelModel):
    status: Optional[InterviewStatus] = None
    transcript: Optional[str] = None


class EvaluateRequest(CamelModel):
    transcript: str = Field(max_length=100_000)

    @field_validator("transcript")
    @classmethod
    def transcript_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Transcript is required for evaluation")
        return v


class GenerateQuestionsRequest(CamelModel):
    job_description: str = Field(min_length=1, max_length=10_000)
    difficulty: Difficulty = Difficulty.MEDIUM
    count: int = Field(default=5, ge=1, le=10)


class FollowUpRequest(CamelModel):
    prompt: str = Field(min_length=1, max_length=10_000)


class CreateOrderRequest(CamelModel):
    amount: int = Field(ge=1)
    currency: Literal["INR", "USD"] = "INR"
    plan: Literal["pro"] = "pro"


class VerifyPaymentRequest(CamelModel):
    """Amount, currency and plan are taken from the stored order, never from the client."""

    order_id: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class GrantCreditsRequest(CamelModel):
    minutes: float = Field(gt=0, le=10_000)
    description: str = "Admin bonus"


class ShareReportRequest(CamelModel):
    is_public: bool = True
    platforms: list[SharePlatform] = []


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email")
        return v
