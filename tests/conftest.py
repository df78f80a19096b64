"""
tests/conftest.py — Shared pytest fixtures
"""
from __future__ import annotations

import os
from types import SimpleNamespace

# Pin configuration before the app reads settings
os.environ["ENVIRONMENT"] = "testing"
os.environ["GEMINI_API_KEY"] = ""
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = ""
os.environ["RAZORPAY_WEBHOOK_SECRET"] = ""
os.environ["JWT_SECRET"] = "test-secret"

import limits.storage.memory
import pytest
from fastapi.testclient import TestClient
from limits.storage import MemoryStorage

from interviewmate.clients.gemini_client import get_gemini_client
from interviewmate.clients.razorpay_client import get_razorpay_client
from interviewmate.config import get_settings
from interviewmate.core.cache_manager import ResponseCache, get_response_cache, get_store
from interviewmate.core.rate_limiter import (
    FixedWindowRateLimiter,
    RateLimitPolicy,
    get_rate_limit_storage,
    get_rate_limiter,
)
from interviewmate.core.store import InMemoryStore
from interviewmate.models import (
    CandidateInfo,
    Difficulty,
    ExperienceLevel,
    Interview,
    InterviewConfiguration,
    InterviewType,
)
from interviewmate.services.evaluation import get_orchestrator
from interviewmate.services.interviews import get_interview_repository
from interviewmate.services.ledger import LedgerRepository, LedgerService, get_ledger, get_ledger_repository
from interviewmate.services.payments import get_order_repository, get_payment_repository, get_payment_service
from interviewmate.services.reports import get_report_repository
from interviewmate.services.users import get_user_repository

_SINGLETONS = [
    get_settings,
    get_store,
    get_rate_limit_storage,
    get_rate_limiter,
    get_response_cache,
    get_user_repository,
    get_interview_repository,
    get_report_repository,
    get_ledger_repository,
    get_ledger,
    get_payment_repository,
    get_order_repository,
    get_payment_service,
    get_gemini_client,
    get_razorpay_client,
    get_orchestrator,
]


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def fresh_singletons():
    """Every test starts with empty stores, counters and repositories."""
    for getter in _SINGLETONS:
        getter.cache_clear()
    yield
    for getter in _SINGLETONS:
        getter.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def limit_storage(clock, monkeypatch) -> MemoryStorage:
    """limits' in-memory backend reading the fake clock."""
    monkeypatch.setattr(limits.storage.memory, "time", SimpleNamespace(time=clock))
    return MemoryStorage()


@pytest.fixture
def limiter(limit_storage, clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(limit_storage, {
        "burst": RateLimitPolicy(name="burst", window_seconds=60, max_requests=5),
        "login": RateLimitPolicy(name="login", window_seconds=900, max_requests=5, skip_successful=True),
    }, clock=clock)


@pytest.fixture
def response_cache(store) -> ResponseCache:
    return ResponseCache(store)


@pytest.fixture
def ledger() -> LedgerService:
    return LedgerService(LedgerRepository(), price_per_minute_usd=0.50)


@pytest.fixture
def sample_interview() -> Interview:
    return Interview(
        user_id="user-1",
        type=InterviewType.TECHNICAL,
        candidate_info=CandidateInfo(
            name="Priya Raman",
            role="Backend Engineer",
            company="Acme Corp",
            experience=ExperienceLevel.MID_LEVEL,
            skills=["Python", "PostgreSQL"],
        ),
        configuration=InterviewConfiguration(
            duration=15,
            difficulty=Difficulty.MEDIUM,
            topics=["APIs", "Databases"],
        ),
    )


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def client():
    from interviewmate.main import app

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def register(client: TestClient, email: str = "priya@example.com", password: str = "s3cure-pass") -> dict:
    response = client.post("/api/auth/register", json={
        "name": "Priya Raman",
        "email": email,
        "password": password,
    })
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def register_user(client):
    def _register(email: str = "priya@example.com", password: str = "s3cure-pass") -> dict:
        return register(client, email, password)
    return _register


@pytest.fixture
def registered(register_user) -> dict:
    return register_user()


@pytest.fixture
def auth_headers(registered) -> dict[str, str]:
    return {"Authorization": f"Bearer {registered['token']}"}


@pytest.fixture
def interview_body() -> dict:
    return {
        "type": "technical",
        "mode": "webspeech",
        "candidateInfo": {
            "name": "Priya Raman",
            "role": "Backend Engineer",
            "company": "Acme Corp",
            "experience": "mid-level",
            "skills": ["Python"],
        },
        "configuration": {
            "duration": 15,
            "difficulty": "medium",
            "topics": ["APIs"],
        },
    }
