"""
tests/test_evaluation.py — Unit tests for the evaluation orchestrator
"""
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core.exceptions import InternalServerError, ResourceExhausted, ServiceUnavailable

from interviewmate.clients.gemini_client import GeminiNotConfiguredError
from interviewmate.models import FallbackEvaluation, FallbackReason, RealEvaluation
from interviewmate.services.evaluation import (
    FALLBACK_MODEL_IDENTIFIER,
    EvaluationOrchestrator,
    EvaluationPayload,
    ModelRequestBudget,
    parse_questions,
)


def _client(text: str = "", side_effect=None, configured: bool = True) -> MagicMock:
    client = MagicMock()
    client.configured = configured
    client.model = "gemini-2.0-flash"
    client.generate = AsyncMock(return_value=text, side_effect=side_effect)
    return client


def _orchestrator(client, clock=None, limit: int = 10) -> EvaluationOrchestrator:
    budget = ModelRequestBudget(limit=limit, window_seconds=60, clock=clock) if clock else ModelRequestBudget(limit=limit)
    return EvaluationOrchestrator(client, budget)


def _all_scores(result) -> list[float]:
    return [result.overall_score, *result.skill_scores.model_dump().values()]


GOOD_REPLY = "Here is my evaluation:\n```json\n" + json.dumps({
    "overallScore": 88,
    "skillScores": {
        "communication": 90,
        "technicalKnowledge": 84,
        "problemSolving": 86,
        "confidence": 80,
        "clarity": 70,
        "behavioral": 60,
    },
    "strengths": ["Clear API design reasoning"],
    "weaknesses": ["Rushed the database section"],
    "recommendations": ["Practice capacity estimates"],
    "detailedFeedback": "Solid performance overall.",
    "badges": ["Made Up Badge"],
}) + "\n```"


# ──────────────────────────────────────────────────────────────────────────────
# Real path
# ──────────────────────────────────────────────────────────────────────────────

def test_real_evaluation_parsed_and_badges_rederived(sample_interview):
    orchestrator = _orchestrator(_client(GOOD_REPLY))
    outcome = asyncio.run(orchestrator.evaluate(sample_interview, "Q: ... A: ..."))

    assert isinstance(outcome, RealEvaluation)
    assert outcome.is_fallback is False
    result = outcome.result
    assert result.overall_score == 88
    assert result.model_identifier == "gemini-2.0-flash"
    assert result.badges == ["Excellent Communicator", "Problem Solver"]
    assert orchestrator.budget.used == 1


def test_scores_are_clamped_and_repaired():
    payload = EvaluationPayload.model_validate({
        "overallScore": 140,
        "skillScores": {
            "communication": -20,
            "technicalKnowledge": "eighty",
            "problemSolving": True,
            "confidence": "91",
            "clarity": None,
        },
        "strengths": ["a", "b", "c", "d", "e", "f", "g"],
        "weaknesses": "not a list",
        "recommendations": ["ok", 42, "  ", "fine"],
    })
    result = payload.to_result("gemini-2.0-flash")

    assert result.overall_score == 100
    assert result.skill_scores.communication == 0
    assert result.skill_scores.technical_knowledge == 70
    assert result.skill_scores.problem_solving == 75
    assert result.skill_scores.confidence == 91
    assert result.skill_scores.clarity == 75
    assert result.skill_scores.behavioral == 75
    assert len(result.strengths) == 5
    assert result.weaknesses == ["Could provide more specific examples"]
    assert result.recommendations == ["ok", "fine"]
    assert result.detailed_feedback
    assert result.badges == ["Confident Leader", "Outstanding Performance"]


def test_skill_scores_not_an_object_take_defaults():
    result = EvaluationPayload.model_validate({"skillScores": [1, 2, 3]}).to_result("m")
    assert result.skill_scores.technical_knowledge == 70
    assert result.overall_score == 75
    assert result.badges == []


def test_nan_score_takes_default(sample_interview):
    reply = '{"overallScore": NaN, "skillScores": {"communication": Infinity}}'
    outcome = asyncio.run(_orchestrator(_client(reply)).evaluate(sample_interview, "t"))
    assert outcome.result.overall_score == 75
    assert outcome.result.skill_scores.communication == 100


@pytest.mark.parametrize("literal,expected", [("1" + "0" * 400, 100), ("-" + "9" * 400, 0)])
def test_oversized_integer_score_is_clamped(sample_interview, literal, expected):
    reply = '{"overallScore": ' + literal + ', "skillScores": {"clarity": ' + literal + '}}'
    outcome = asyncio.run(_orchestrator(_client(reply)).evaluate(sample_interview, "t"))
    assert isinstance(outcome, RealEvaluation)
    assert outcome.result.overall_score == expected
    assert outcome.result.skill_scores.clarity == expected


def test_first_json_object_wins_after_noise(sample_interview):
    reply = 'Score {not json} then {"overallScore": 64} and {"overallScore": 99}'
    outcome = asyncio.run(_orchestrator(_client(reply)).evaluate(sample_interview, "t"))
    assert isinstance(outcome, RealEvaluation)
    assert outcome.result.overall_score == 64


# ──────────────────────────────────────────────────────────────────────────────
# Fallback path
# ──────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("exc,reason", [
    (ResourceExhausted("quota"), FallbackReason.QUOTA_EXCEEDED),
    (ServiceUnavailable("overloaded"), FallbackReason.UNAVAILABLE),
    (InternalServerError("boom"), FallbackReason.UNAVAILABLE),
    (asyncio.TimeoutError(), FallbackReason.TIMEOUT),
    (GeminiNotConfiguredError("no key"), FallbackReason.NOT_CONFIGURED),
])
def test_upstream_failure_returns_fixed_fallback(sample_interview, exc, reason):
    orchestrator = _orchestrator(_client(side_effect=exc))
    outcome = asyncio.run(orchestrator.evaluate(sample_interview, "t"))

    assert isinstance(outcome, FallbackEvaluation)
    assert outcome.reason == reason
    assert outcome.result.model_identifier == FALLBACK_MODEL_IDENTIFIER
    assert outcome.result.overall_score == 75
    assert outcome.result.skill_scores.technical_knowledge == 70
    assert outcome.result.badges == []
    # Failed calls do not consume budget
    assert orchestrator.budget.used == 0


def test_unconfigured_client_skips_call(sample_interview):
    client = _client(GOOD_REPLY, configured=False)
    outcome = asyncio.run(_orchestrator(client).evaluate(sample_interview, "t"))
    assert outcome.reason == FallbackReason.NOT_CONFIGURED
    client.generate.assert_not_awaited()


@pytest.mark.parametrize("reply", ["", "I cannot evaluate this.", "[1, 2, 3]", '{"broken": '])
def test_malformed_reply_falls_back(sample_interview, reply):
    outcome = asyncio.run(_orchestrator(_client(reply)).evaluate(sample_interview, "t"))
    assert isinstance(outcome, FallbackEvaluation)
    assert outcome.reason == FallbackReason.MALFORMED_RESPONSE
    assert outcome.result.overall_score == 75


def test_programmer_error_propagates(sample_interview):
    orchestrator = _orchestrator(_client(side_effect=AttributeError("bug")))
    with pytest.raises(AttributeError):
        asyncio.run(orchestrator.evaluate(sample_interview, "t"))


def test_scores_always_within_bounds(sample_interview):
    replies = [GOOD_REPLY, '{"overallScore": 1e9}', '{"overallScore": -5}', "garbage"]
    for reply in replies:
        outcome = asyncio.run(_orchestrator(_client(reply)).evaluate(sample_interview, "t"))
        assert all(0 <= s <= 100 for s in _all_scores(outcome.result))
        assert len(outcome.result.badges) == len(set(outcome.result.badges))


# ──────────────────────────────────────────────────────────────────────────────
# Budget
# ──────────────────────────────────────────────────────────────────────────────

def test_budget_exhaustion_skips_model(sample_interview, clock):
    client = _client(GOOD_REPLY)
    orchestrator = _orchestrator(client, clock=clock, limit=2)

    for _ in range(2):
        assert isinstance(asyncio.run(orchestrator.evaluate(sample_interview, "t")), RealEvaluation)

    outcome = asyncio.run(orchestrator.evaluate(sample_interview, "t"))
    assert outcome.reason == FallbackReason.BUDGET_EXHAUSTED
    assert client.generate.await_count == 2


def test_budget_resets_from_last_reset(clock):
    budget = ModelRequestBudget(limit=1, window_seconds=60, clock=clock)
    budget.record()
    assert not budget.available()
    clock.advance(59)
    assert not budget.available()
    clock.advance(1)
    assert budget.available()
    assert budget.used == 0


# ──────────────────────────────────────────────────────────────────────────────
# Question and follow-up generation
# ──────────────────────────────────────────────────────────────────────────────

def test_generate_questions_from_json():
    reply = '[{"question": "How do you design an API?", "type": "technical"}, {"question": "Why us?"}]'
    questions, used_fallback = asyncio.run(_orchestrator(_client(reply)).generate_questions("Backend role", "hard", 5))
    assert used_fallback is False
    assert [q.question for q in questions] == ["How do you design an API?", "Why us?"]
    assert questions[0].type == "technical"
    assert questions[1].type == "behavioral"


def test_parse_questions_from_numbered_text():
    text = "1. What is REST?\n2. Explain indexing?\nThanks!"
    assert [q.question for q in parse_questions(text, 5)] == ["What is REST?", "Explain indexing?"]


def test_generate_questions_falls_back_on_failure():
    questions, used_fallback = asyncio.run(
        _orchestrator(_client(side_effect=ServiceUnavailable("down"))).generate_questions("jd", "easy", 3)
    )
    assert used_fallback is True
    assert len(questions) == 3
    assert questions[0].question == "Tell me about yourself and your background."


def test_generate_follow_up():
    text, used_fallback = asyncio.run(_orchestrator(_client("Can you expand on that?")).generate_follow_up("p"))
    assert (text, used_fallback) == ("Can you expand on that?", False)

    text, used_fallback = asyncio.run(
        _orchestrator(_client(side_effect=ResourceExhausted("quota"))).generate_follow_up("p")
    )
    assert (text, used_fallback) == ("", True)
