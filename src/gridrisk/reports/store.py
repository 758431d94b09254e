"""
Report Store and Notifier

Owns the report status lifecycle: a report is created in 'generating' and
finalized exactly once to 'ready' (with payload and expiry) or 'failed'
(with an error message and no payload).
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk.db.models import Notification, Report
from src.gridrisk.db.repository import NotificationRepository, ProfileRepository, ReportRepository
from src.gridrisk.exceptions import InvalidReportStateError
from src.gridrisk.models.risk import ReportStatus, ReportType, Severity
from src.gridrisk.notifications.dispatch import EmailSender, format_report_ready_email, run_best_effort
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

REPORT_READY = "report_ready"


class ReportStore:
    """
    Persists report records and their terminal transitions.

    Args:
        expiry_days: Days a ready report stays available
    """

    def __init__(self, expiry_days: Optional[int] = None):
        self.expiry_days = expiry_days or settings.report_expiry_days
        self.reports = ReportRepository()

    def create(
        self,
        session: Session,
        report_type: ReportType,
        title: str,
        description: Optional[str],
        user_id: Optional[str],
        filters: Dict[str, Any],
    ) -> Report:
        report = self.reports.create(
            session,
            report_type=report_type.value,
            title=title,
            description=description,
            status=ReportStatus.GENERATING.value,
            filters=filters,
            generated_by=user_id,
            created_at=datetime.now(timezone.utc),
        )
        logger.info("report_created", report_id=report.id, report_type=report_type.value, user_id=user_id)
        return report

    def mark_ready(self, session: Session, report_id: str, document: Dict[str, Any]) -> datetime:
        """
        Finalize a report as ready.

        Args:
            session: Database session
            report_id: Report id
            document: Assembled report document

        Returns:
            Generation timestamp written to the record

        Raises:
            InvalidReportStateError: Report already left 'generating'
        """
        generated_at = datetime.now(timezone.utc)
        transitioned = self.reports.finalize(
            session,
            report_id,
            ReportStatus.READY,
            data=document,
            generated_at=generated_at,
            expires_at=generated_at + timedelta(days=self.expiry_days),
            error_message=None,
        )
        if not transitioned:
            raise InvalidReportStateError(f"Report {report_id} is no longer generating")
        return generated_at

    def mark_failed(self, session: Session, report_id: str, error_message: str):
        """
        Finalize a report as failed. No payload is stored.

        Raises:
            InvalidReportStateError: Report already left 'generating'
        """
        transitioned = self.reports.finalize(
            session,
            report_id,
            ReportStatus.FAILED,
            data=None,
            error_message=error_message,
        )
        if not transitioned:
            raise InvalidReportStateError(f"Report {report_id} is no longer generating")
        logger.warning("report_failed", report_id=report_id, error=error_message)


class ReportNotifier:
    """
    Emits the completion notification for a ready report.

    A retried call may create a second notification; the email is a
    best-effort side effect and never fails the caller.
    """

    def __init__(self, email_sender: Optional[EmailSender] = None, email_timeout: Optional[float] = None):
        self.email_sender = email_sender
        self.email_timeout = email_timeout
        self.notifications = NotificationRepository()
        self.profiles = ProfileRepository()

    def report_ready(
        self,
        session: Session,
        report_id: str,
        report_type: ReportType,
        title: str,
        user_id: Optional[str],
        generated_at: datetime,
    ) -> Notification:
        label = report_type.value.replace("_", " ")
        notification = self.notifications.create(
            session,
            user_id=user_id,
            type=REPORT_READY,
            title="Report Ready",
            message=f"Your {label} report is ready for viewing.",
            severity=Severity.MEDIUM.value,
            meta={"report_id": report_id},
            created_at=datetime.now(timezone.utc),
        )

        profile = self.profiles.get_by_id(session, user_id) if user_id else None
        if self.email_sender is not None and profile is not None and profile.email and profile.email_notifications:
            email = format_report_ready_email(title, report_type.value, report_id, generated_at.isoformat())
            notification.sent_email = bool(run_best_effort(
                lambda: self.email_sender.send(profile.email, email["subject"], email["body"]),
                timeout=self.email_timeout,
                name="report_ready_email",
            ))
            session.flush()

        logger.info("report_ready_notification_created", report_id=report_id, user_id=user_id)
        return notification
