"""
Reports Router

Endpoints for report generation, retrieval and export.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from src.gridrisk.api.dependencies import (
    get_blob_store,
    get_db,
    get_email_sender,
    get_text_client,
    get_user_id,
)
from src.gridrisk.api.schemas import GenerateReportRequest, ReportDetail, ReportListItem
from src.gridrisk.llm.client import TextGenerationClient
from src.gridrisk.models.risk import ReportStatus
from src.gridrisk.notifications.dispatch import EmailSender
from src.gridrisk.reports.service import ReportService
from src.gridrisk.storage.blob import LocalBlobStore

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


def get_report_service(
    db: Session = Depends(get_db),
    text_client: Optional[TextGenerationClient] = Depends(get_text_client),
    email_sender: EmailSender = Depends(get_email_sender),
    blob_store: LocalBlobStore = Depends(get_blob_store),
) -> ReportService:
    return ReportService(db, text_client=text_client, email_sender=email_sender, blob_store=blob_store)


def _detail(report) -> ReportDetail:
    detail = ReportDetail.model_validate(report)
    if report.status != ReportStatus.READY.value:
        detail.data = None
    return detail


@router.post("/", response_model=ReportDetail, status_code=201)
def generate_report(
    request: GenerateReportRequest,
    user_id: str = Depends(get_user_id),
    service: ReportService = Depends(get_report_service),
):
    """
    Generate a report synchronously.

    Returns:
        The finalized report (status ready)
    """
    report = service.generate_report(request.report_type, user_id, request.filters)
    return _detail(report)


@router.get("/", response_model=List[ReportListItem])
def list_reports(
    limit: int = Query(20, ge=1, le=100, description="Number of reports to return"),
    user_id: str = Depends(get_user_id),
    service: ReportService = Depends(get_report_service),
):
    """
    List the caller's reports, newest first.
    """
    return [ReportListItem.model_validate(r) for r in service.list_reports(user_id, limit)]


@router.get("/{report_id}", response_model=ReportDetail)
def get_report(
    report_id: str,
    user_id: str = Depends(get_user_id),
    service: ReportService = Depends(get_report_service),
):
    return _detail(service.get_report(report_id, user_id))


@router.get("/{report_id}/export")
def export_report(
    report_id: str,
    format: str = Query("json", pattern="^(json|csv)$", description="Export encoding"),
    user_id: str = Depends(get_user_id),
    service: ReportService = Depends(get_report_service),
):
    """
    Download a ready report as JSON or CSV.
    """
    filename, media_type, body = service.export_report(report_id, user_id, format)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/schedule-daily")
def schedule_daily_reports(
    user_id: str = Depends(get_user_id),
    service: ReportService = Depends(get_report_service),
):
    """
    Generate daily summaries for all admin and manager profiles.

    Only admins and managers may trigger this.
    """
    return service.schedule_daily_reports(requested_by=user_id)
