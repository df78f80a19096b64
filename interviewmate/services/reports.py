"""
interviewmate/services/reports.py — Shareable interview reports
One report per evaluated interview. Sharing mints a public slug once; an
unshared report keeps its slug but is invisible to the public lookup.
"""
from __future__ import annotations

import math
import re
import secrets
import time
from datetime import datetime
from functools import lru_cache
from typing import Any, Optional

from loguru import logger

from interviewmate.core.errors import DuplicateResourceError, ValidationFailedError
from interviewmate.models import (
    Interview,
    InterviewDetails,
    Report,
    ReportData,
    ShareRecord,
    SharePlatform,
)

_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class ReportRepository:
    """In-process report store; interview id and public slug are both unique."""

    def __init__(self) -> None:
        self._reports: dict[str, Report] = {}

    async def add(self, report: Report) -> Report:
        if await self.get_for_interview(report.interview_id) is not None:
            raise DuplicateResourceError("Report already exists for this interview")
        self._reports[report.id] = report
        return report

    async def get_owned(self, report_id: str, user_id: str) -> Optional[Report]:
        report = self._reports.get(report_id)
        if report is None or report.user_id != user_id:
            return None
        return report

    async def get_for_interview(self, interview_id: str) -> Optional[Report]:
        return next((r for r in self._reports.values() if r.interview_id == interview_id), None)

    async def get_by_slug(self, slug: str) -> Optional[Report]:
        return next((r for r in self._reports.values() if r.sharing.public_slug == slug), None)

    async def save(self, report: Report) -> Report:
        report.updated_at = datetime.utcnow()
        self._reports[report.id] = report
        return report

    async def delete(self, report_id: str) -> bool:
        return self._reports.pop(report_id, None) is not None

    async def list_for_user(self, user_id: str, status: Optional[str] = None) -> list[Report]:
        """Newest first."""
        matches = [
            r for r in self._reports.values()
            if r.user_id == user_id and (status is None or r.status.value == status)
        ]
        return sorted(matches, key=lambda r: r.created_at, reverse=True)

    def clear(self) -> None:
        self._reports.clear()


# ──────────────────────────────────────────────────────────────────────────────
# Operations
# ──────────────────────────────────────────────────────────────────────────────

def _base36(number: int) -> str:
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def slugify(text: str) -> str:
    return _SLUG_UNSAFE.sub("-", text.lower()).strip("-")


def build_public_slug(report: Report) -> str:
    """<candidate>-<role>-<base36 millis>-<random>; readable and unguessable."""
    candidate = report.data.candidate_info
    parts = [
        slugify(candidate.name),
        slugify(candidate.role),
        _base36(int(time.time() * 1000)),
        secrets.token_hex(3),
    ]
    return "-".join(p for p in parts if p)


def public_url(client_url: str, slug: str) -> str:
    return f"{client_url.rstrip('/')}/reports/public/{slug}"


async def generate_report(repository: ReportRepository, interview: Interview) -> tuple[Report, bool]:
    """
    Snapshot an evaluated interview into a report. Idempotent per interview:
    returns (report, created) where created is False for an existing one.
    """
    existing = await repository.get_for_interview(interview.id)
    if existing is not None:
        return existing, False

    if interview.evaluation is None:
        raise ValidationFailedError("Interview has not been evaluated yet")

    report = Report(
        user_id=interview.user_id,
        interview_id=interview.id,
        data=ReportData(
            candidate_info=interview.candidate_info,
            interview_details=InterviewDetails(
                type=interview.type,
                duration=interview.configuration.duration,
                difficulty=interview.configuration.difficulty,
                date=interview.created_at,
            ),
            evaluation=interview.evaluation,
        ),
    )
    await repository.add(report)
    logger.info(f"Report {report.id} generated for interview {interview.id}")
    return report, True


async def set_sharing(
    repository: ReportRepository,
    report: Report,
    is_public: bool,
    platforms: list[SharePlatform],
    client_url: str,
) -> Optional[str]:
    """Publish or withdraw a report. Returns the public URL while shared, else None."""
    if not is_public:
        report.sharing.is_public = False
        await repository.save(report)
        return None

    if report.sharing.public_slug is None:
        slug = build_public_slug(report)
        while await repository.get_by_slug(slug) is not None:
            slug = build_public_slug(report)
        report.sharing.public_slug = slug
    report.sharing.is_public = True

    url = public_url(client_url, report.sharing.public_slug)
    report.sharing.shared_on.extend(ShareRecord(platform=p, url=url) for p in platforms)
    await repository.save(report)
    return url


async def view_public(repository: ReportRepository, slug: str) -> Optional[Report]:
    """Resolve a shared slug and count the view; None when unknown or withdrawn."""
    report = await repository.get_by_slug(slug)
    if report is None or not report.sharing.is_public:
        return None
    report.sharing.views += 1
    report.sharing.last_viewed = datetime.utcnow()
    return await repository.save(report)


async def list_reports(
    repository: ReportRepository,
    user_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
) -> dict[str, Any]:
    reports = await repository.list_for_user(user_id, status)
    total = len(reports)
    start = (page - 1) * limit
    return {
        "success": True,
        "reports": [r.to_json() for r in reports[start:start + limit]],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


@lru_cache()
def get_report_repository() -> ReportRepository:
    return ReportRepository()
