"""
Notification Service

In-app notifications: creation with optional email, read tracking and the
critical risk alert scan.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk.db.models import Notification, Profile, Unit
from src.gridrisk.db.repository import NotificationRepository, ProfileRepository, UnitRepository
from src.gridrisk.models.risk import Severity
from src.gridrisk.notifications.dispatch import EmailSender, format_risk_alert_email, run_best_effort
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

RISK_ALERT = "risk_alert"


def _covers_district(profile: Profile, district: str) -> bool:
    # Empty access list means every district
    access = profile.district_access or []
    return not access or district in access


class NotificationService:
    """
    Args:
        session: Database session
        email_sender: Email sender (None disables email)
        email_timeout: Seconds to wait for each email
    """

    def __init__(
        self,
        session: Session,
        email_sender: Optional[EmailSender] = None,
        email_timeout: Optional[float] = None,
    ):
        self.session = session
        self.email_sender = email_sender
        self.email_timeout = email_timeout
        self.notifications = NotificationRepository()
        self.profiles = ProfileRepository()
        self.units = UnitRepository()

    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        severity: Severity,
        unit_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        email: Optional[Dict[str, str]] = None,
    ) -> Notification:
        """
        Insert a notification.

        HIGH severity notifications are also emailed to recipients who opted
        in. Email delivery is best effort and never fails the call.

        Args:
            user_id: Recipient
            notification_type: Type tag
            title: Title
            message: Message body
            severity: Severity
            unit_id: Related unit
            metadata: Extra JSON data
            email: Prepared subject/body; defaults to the title and message
        """
        notification = self.notifications.create(
            self.session,
            user_id=user_id,
            unit_id=unit_id,
            type=notification_type,
            title=title,
            message=message,
            severity=severity.value,
            meta=metadata or {},
            created_at=datetime.now(timezone.utc),
        )

        if severity is Severity.HIGH and self.email_sender is not None:
            profile = self.profiles.get_by_id(self.session, user_id)
            if profile is not None and profile.email_notifications and profile.email:
                content = email or {"subject": title, "body": message}
                notification.sent_email = bool(run_best_effort(
                    lambda: self.email_sender.send(profile.email, content["subject"], content["body"]),
                    timeout=self.email_timeout,
                    name=f"{notification_type}_email",
                ))
                self.session.flush()

        logger.info(
            "notification_created",
            notification_id=notification.id,
            user_id=user_id,
            type=notification_type,
            severity=severity.value,
        )
        return notification

    def mark_read(self, notification_id: int, user_id: str) -> bool:
        """
        Mark a notification read. Only the owner can do this, and only once.

        Returns:
            True if the notification was marked read by this call
        """
        updated = self.notifications.mark_read(
            self.session, notification_id, user_id, datetime.now(timezone.utc)
        )
        if not updated:
            logger.info("notification_mark_read_skipped", notification_id=notification_id, user_id=user_id)
        return updated

    def unread(self, user_id: str, limit: int = 10) -> List[Notification]:
        return self.notifications.unread_for_user(self.session, user_id, limit)

    def send_risk_alerts(self, min_score: Optional[float] = None) -> Dict[str, Any]:
        """
        Raise risk alert notifications for critical units.

        Every RED unit at or above min_score produces one notification per
        opted-in profile that can see its district, at most once per user
        and unit per UTC day.

        Returns:
            Counts plus the list of alerted units
        """
        threshold = settings.risk_alert_min_score if min_score is None else min_score
        units = self.units.alert_candidates(self.session, threshold)
        subscribers = self.profiles.email_subscribers(self.session)
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

        alerts_sent = 0
        skipped = 0
        alerted: List[Dict[str, Any]] = []

        for unit in units:
            recipients = [p for p in subscribers if _covers_district(p, unit.district)]
            unit_alerted = False
            for profile in recipients:
                if self.notifications.exists_since(self.session, profile.id, unit.id, RISK_ALERT, today):
                    skipped += 1
                    continue
                self._risk_alert(profile.id, unit)
                alerts_sent += 1
                unit_alerted = True
            if unit_alerted:
                alerted.append({
                    "name": unit.name,
                    "urn": unit.urn,
                    "district": unit.district,
                    "risk_score": unit.risk_score,
                })

        logger.info(
            "risk_alert_scan_complete",
            units_checked=len(units),
            alerts_sent=alerts_sent,
            duplicates_skipped=skipped,
        )
        return {
            "alerts_sent": alerts_sent,
            "units_checked": len(units),
            "duplicates_skipped": skipped,
            "alerted_units": alerted,
        }

    def _risk_alert(self, user_id: str, unit: Unit) -> Notification:
        return self.create(
            user_id=user_id,
            notification_type=RISK_ALERT,
            title=f"Critical Risk Alert: {unit.name}",
            message=(
                f"Unit {unit.name} ({unit.urn}) in {unit.district} has a risk score of "
                f"{unit.risk_score}. Immediate attention required."
            ),
            severity=Severity.HIGH,
            unit_id=unit.id,
            metadata={"risk_score": unit.risk_score, "district": unit.district, "arrears": unit.arrears},
            email=format_risk_alert_email(unit.name, unit.urn, unit.district, unit.risk_score, unit.arrears),
        )
