"""
Tests for Report Store and Notifier
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from src.gridrisk.db.models import Notification, Report
from src.gridrisk.exceptions import InvalidReportStateError, NotificationDeliveryError
from src.gridrisk.models.risk import ReportType
from src.gridrisk.reports.store import ReportNotifier, ReportStore


@pytest.fixture
def store():
    return ReportStore(expiry_days=30)


@pytest.fixture
def report(test_db, store):
    report = store.create(test_db, ReportType.DAILY_SUMMARY, "Daily Risk Summary", "Daily overview", "user-1", {})
    test_db.commit()
    return report


class TestReportStore:
    """Tests for report lifecycle writes."""

    def test_create_generating(self, report):
        assert report.status == "generating"
        assert report.data is None
        assert report.generated_by == "user-1"

    def test_mark_ready_sets_payload_and_expiry(self, test_db, store, report):
        generated_at = store.mark_ready(test_db, report.id, {"header": {}})
        test_db.commit()

        stored = test_db.get(Report, report.id)
        assert stored.status == "ready"
        assert stored.data == {"header": {}}
        assert stored.generated_at.replace(tzinfo=None) == generated_at.replace(tzinfo=None)
        assert stored.expires_at - stored.generated_at == timedelta(days=30)

    def test_mark_failed_clears_payload(self, test_db, store, report):
        store.mark_failed(test_db, report.id, "Failed to fetch report data")
        test_db.commit()

        stored = test_db.get(Report, report.id)
        assert stored.status == "failed"
        assert stored.data is None
        assert stored.error_message == "Failed to fetch report data"

    def test_terminal_state_is_final(self, test_db, store, report):
        """Test that a finalized report cannot be finalized again."""
        store.mark_ready(test_db, report.id, {"header": {}})

        with pytest.raises(InvalidReportStateError):
            store.mark_failed(test_db, report.id, "late failure")
        with pytest.raises(InvalidReportStateError):
            store.mark_ready(test_db, report.id, {"other": True})

        assert test_db.get(Report, report.id).status == "ready"


class TestReportNotifier:
    """Tests for report-ready notifications."""

    def test_notification_without_email(self, test_db, report):
        notification = ReportNotifier().report_ready(
            test_db, report.id, ReportType.DAILY_SUMMARY, report.title, "user-1", datetime.now(timezone.utc)
        )

        assert notification.type == "report_ready"
        assert notification.severity == "MEDIUM"
        assert notification.meta == {"report_id": report.id}
        assert notification.message == "Your daily summary report is ready for viewing."
        assert notification.sent_email is False

    def test_email_for_opted_in_profile(self, test_db, report, make_profile):
        make_profile("user-1")
        sender = MagicMock()
        sender.send.return_value = True

        notification = ReportNotifier(email_sender=sender).report_ready(
            test_db, report.id, ReportType.DAILY_SUMMARY, report.title, "user-1", datetime.now(timezone.utc)
        )

        assert notification.sent_email is True
        to_email, subject, body = sender.send.call_args[0]
        assert to_email == "user-1@example.com"
        assert subject == "Report Ready: Daily Risk Summary"
        assert report.id in body

    def test_no_email_when_opted_out(self, test_db, report, make_profile):
        make_profile("user-1", email_notifications=False)
        sender = MagicMock()

        ReportNotifier(email_sender=sender).report_ready(
            test_db, report.id, ReportType.DAILY_SUMMARY, report.title, "user-1", datetime.now(timezone.utc)
        )

        sender.send.assert_not_called()

    def test_email_failure_does_not_fail_notification(self, test_db, report, make_profile):
        """Test that delivery errors leave the notification in place."""
        make_profile("user-1")
        sender = MagicMock()
        sender.send.side_effect = NotificationDeliveryError("smtp down")

        notification = ReportNotifier(email_sender=sender).report_ready(
            test_db, report.id, ReportType.DAILY_SUMMARY, report.title, "user-1", datetime.now(timezone.utc)
        )

        assert notification.sent_email is False
        assert test_db.get(Notification, notification.id) is not None
