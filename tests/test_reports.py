"""
tests/test_reports.py — Report generation, sharing and the public view
"""
from __future__ import annotations

import asyncio

import pytest

from interviewmate.core.errors import ValidationFailedError
from interviewmate.models import EvaluationResult, SharePlatform, SkillScores
from interviewmate.services.reports import (
    ReportRepository,
    build_public_slug,
    generate_report,
    set_sharing,
    slugify,
    view_public,
)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _evaluate(interview, score: float = 82) -> None:
    interview.evaluation = EvaluationResult(
        overall_score=score,
        skill_scores=SkillScores(
            communication=80, technical_knowledge=85, problem_solving=78,
            confidence=81, clarity=84, behavioral=79,
        ),
        strengths=["Clear API design reasoning"],
        model_identifier="gemini-2.0-flash",
    )


def _evaluated_interview(client, headers, interview_body) -> str:
    interview_id = client.post("/api/interviews", json=interview_body, headers=headers).json()["interview"]["id"]
    response = client.post(
        f"/api/interviews/{interview_id}/evaluate",
        json={"transcript": "Interviewer: Tell me about APIs. Candidate: ..."},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return interview_id


# ──────────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────────

def test_generate_snapshots_the_evaluation(sample_interview):
    _evaluate(sample_interview)
    repository = ReportRepository()

    report, created = asyncio.run(generate_report(repository, sample_interview))

    assert created is True
    assert report.user_id == "user-1"
    assert report.data.evaluation.overall_score == 82
    assert report.data.interview_details.duration == 15
    assert report.to_json()["performanceGrade"] == "A"


def test_generate_is_idempotent_per_interview(sample_interview):
    _evaluate(sample_interview)
    repository = ReportRepository()

    first, _ = asyncio.run(generate_report(repository, sample_interview))
    again, created = asyncio.run(generate_report(repository, sample_interview))

    assert created is False
    assert again.id == first.id


def test_generate_requires_an_evaluation(sample_interview):
    with pytest.raises(ValidationFailedError, match="not been evaluated"):
        asyncio.run(generate_report(ReportRepository(), sample_interview))


def test_slug_is_url_safe():
    assert slugify("  Priya  Raman ") == "priya-raman"
    assert slugify("C++ / Go Dev!") == "c-go-dev"


def test_public_slug_names_candidate_and_role(sample_interview):
    _evaluate(sample_interview)
    report, _ = asyncio.run(generate_report(ReportRepository(), sample_interview))

    slug = build_public_slug(report)

    assert slug.startswith("priya-raman-backend-engineer-")
    assert build_public_slug(report) != slug


def test_unshare_keeps_slug_and_hides_report(sample_interview):
    _evaluate(sample_interview)
    repository = ReportRepository()
    report, _ = asyncio.run(generate_report(repository, sample_interview))

    url = asyncio.run(set_sharing(repository, report, True, [], "https://app.test/"))
    slug = report.sharing.public_slug
    assert url == f"https://app.test/reports/public/{slug}"

    assert asyncio.run(set_sharing(repository, report, False, [], "https://app.test")) is None
    assert asyncio.run(view_public(repository, slug)) is None

    asyncio.run(set_sharing(repository, report, True, [SharePlatform.LINKEDIN], "https://app.test"))
    assert report.sharing.public_slug == slug
    assert [s.platform for s in report.sharing.shared_on] == [SharePlatform.LINKEDIN]


def test_public_view_counts_views(sample_interview):
    _evaluate(sample_interview)
    repository = ReportRepository()
    report, _ = asyncio.run(generate_report(repository, sample_interview))
    asyncio.run(set_sharing(repository, report, True, [], "https://app.test"))

    for _ in range(3):
        viewed = asyncio.run(view_public(repository, report.sharing.public_slug))

    assert viewed.sharing.views == 3
    assert viewed.sharing.last_viewed is not None
    assert asyncio.run(view_public(repository, "no-such-slug")) is None


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

def test_generate_endpoint_creates_then_returns_existing(client, auth_headers, interview_body):
    interview_id = _evaluated_interview(client, auth_headers, interview_body)

    created = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers)
    assert created.status_code == 201
    report = created.json()["report"]
    assert report["interviewId"] == interview_id
    assert report["status"] == "completed"
    assert report["data"]["evaluation"]["overallScore"] == 75
    assert report["sharing"]["isPublic"] is False

    again = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers)
    assert again.status_code == 200
    assert again.json()["report"]["id"] == report["id"]


def test_generate_endpoint_rejects_unevaluated_interview(client, auth_headers, interview_body):
    interview_id = client.post("/api/interviews", json=interview_body, headers=auth_headers).json()["interview"]["id"]
    response = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_generate_endpoint_hides_other_users_interview(client, register_user, auth_headers, interview_body):
    interview_id = _evaluated_interview(client, auth_headers, interview_body)
    other = _bearer(register_user("other@example.com")["token"])

    response = client.post(f"/api/reports/generate/{interview_id}", headers=other)
    assert response.status_code == 404


def test_share_then_public_view_without_token(client, auth_headers, interview_body):
    interview_id = _evaluated_interview(client, auth_headers, interview_body)
    report_id = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers).json()["report"]["id"]

    shared = client.post(
        f"/api/reports/{report_id}/share", json={"platforms": ["linkedin"]}, headers=auth_headers,
    )
    assert shared.status_code == 200
    body = shared.json()
    slug = body["report"]["sharing"]["publicSlug"]
    assert body["publicUrl"].endswith(f"/reports/public/{slug}")
    assert body["report"]["sharing"]["sharedOn"][0]["platform"] == "linkedin"

    public = client.get(f"/api/reports/public/{slug}")
    assert public.status_code == 200
    report = public.json()["report"]
    assert report["sharing"]["views"] == 1
    assert "userId" not in report
    assert "sharedOn" not in report["sharing"]


def test_withdrawn_report_is_not_public(client, auth_headers, interview_body):
    interview_id = _evaluated_interview(client, auth_headers, interview_body)
    report_id = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers).json()["report"]["id"]
    slug = client.post(
        f"/api/reports/{report_id}/share", json={}, headers=auth_headers,
    ).json()["report"]["sharing"]["publicSlug"]

    withdrawn = client.post(
        f"/api/reports/{report_id}/share", json={"isPublic": False}, headers=auth_headers,
    )
    assert withdrawn.status_code == 200
    assert withdrawn.json()["publicUrl"] is None

    response = client.get(f"/api/reports/public/{slug}")
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Public report not found"


def test_share_rejects_unknown_platform(client, auth_headers, interview_body):
    interview_id = _evaluated_interview(client, auth_headers, interview_body)
    report_id = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers).json()["report"]["id"]

    response = client.post(
        f"/api/reports/{report_id}/share", json={"platforms": ["myspace"]}, headers=auth_headers,
    )
    assert response.status_code == 400


def test_list_get_and_delete_reports(client, register_user, auth_headers, interview_body):
    interview_id = _evaluated_interview(client, auth_headers, interview_body)
    report_id = client.post(f"/api/reports/generate/{interview_id}", headers=auth_headers).json()["report"]["id"]

    listing = client.get("/api/reports", headers=auth_headers).json()
    assert listing["pagination"]["total"] == 1
    assert listing["reports"][0]["id"] == report_id

    fetched = client.get(f"/api/reports/{report_id}", headers=auth_headers)
    assert fetched.status_code == 200
    assert fetched.json()["report"]["performanceGrade"] == "B"

    other = _bearer(register_user("other@example.com")["token"])
    assert client.get(f"/api/reports/{report_id}", headers=other).status_code == 404
    assert client.delete(f"/api/reports/{report_id}", headers=other).status_code == 404

    assert client.delete(f"/api/reports/{report_id}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/reports/{report_id}", headers=auth_headers).status_code == 404
    assert client.get("/api/reports", headers=auth_headers).json()["pagination"]["total"] == 0


def test_reports_require_token(client):
    assert client.get("/api/reports").status_code == 401
