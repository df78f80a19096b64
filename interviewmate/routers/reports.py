"""
interviewmate/routers/reports.py — Report generation, sharing and the public report view
Everything except GET /public/{slug} requires a token and only sees the
caller's own reports.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from interviewmate.config import get_settings
from interviewmate.core.auth import get_current_user
from interviewmate.core.errors import NotFoundError
from interviewmate.models import Report, ReportStatus, ShareReportRequest, User
from interviewmate.services.interviews import InterviewRepository, get_interview_repository
from interviewmate.services.reports import (
    ReportRepository,
    generate_report,
    get_report_repository,
    list_reports,
    set_sharing,
    view_public,
)

router = APIRouter()


async def _owned_report(report_id: str, user: User, reports: ReportRepository) -> Report:
    report = await reports.get_owned(report_id, user.id)
    if report is None:
        raise NotFoundError("Report")
    return report


@router.post("/generate/{interview_id}")
async def generate(
    interview_id: str,
    response: Response,
    user: User = Depends(get_current_user),
    interviews: InterviewRepository = Depends(get_interview_repository),
    reports: ReportRepository = Depends(get_report_repository),
) -> dict[str, Any]:
    """201 for a new report, 200 when the interview already has one."""
    interview = await interviews.get_owned(interview_id, user.id)
    if interview is None:
        raise NotFoundError("Interview")

    report, created = await generate_report(reports, interview)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {"success": True, "report": report.to_json()}


@router.get("")
async def my_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ReportStatus] = None,
    user: User = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repository),
) -> dict[str, Any]:
    return await list_reports(reports, user.id, page, limit, status.value if status else None)


@router.get("/public/{slug}")
async def public_report(
    slug: str,
    reports: ReportRepository = Depends(get_report_repository),
) -> dict[str, Any]:
    report = await view_public(reports, slug)
    if report is None:
        raise NotFoundError("Public report")
    return {"success": True, "report": report.public()}


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repository),
) -> dict[str, Any]:
    report = await _owned_report(report_id, user, reports)
    return {"success": True, "report": report.to_json()}


@router.post("/{report_id}/share")
async def share_report(
    report_id: str,
    body: ShareReportRequest,
    user: User = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repository),
) -> dict[str, Any]:
    report = await _owned_report(report_id, user, reports)
    url = await set_sharing(
        reports, report, body.is_public, body.platforms, get_settings().client_url,
    )
    return {"success": True, "publicUrl": url, "report": report.to_json()}


@router.delete("/{report_id}")
async def delete_report(
    report_id: str,
    user: User = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repository),
) -> dict[str, Any]:
    report = await _owned_report(report_id, user, reports)
    await reports.delete(report.id)
    return {"success": True, "message": "Report deleted"}
