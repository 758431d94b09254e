"""
Tests for Notification Service
"""
from unittest.mock import MagicMock

import pytest

from src.gridrisk.db.models import Notification
from src.gridrisk.models.risk import Severity
from src.gridrisk.notifications.service import NotificationService


@pytest.fixture
def sender():
    sender = MagicMock()
    sender.send.return_value = True
    return sender


class TestCreate:
    """Tests for notification creation."""

    def test_high_severity_emails_opted_in_user(self, test_db, make_profile, sender):
        make_profile("ops")
        service = NotificationService(test_db, email_sender=sender)

        notification = service.create("ops", "manual", "Field visit", "Visit Salem today", Severity.HIGH,
                                      metadata={"source": "dashboard"})

        assert notification.sent_email is True
        assert notification.meta == {"source": "dashboard"}
        sender.send.assert_called_once_with("ops@example.com", "Field visit", "Visit Salem today")

    def test_medium_severity_not_emailed(self, test_db, make_profile, sender):
        make_profile("ops")
        service = NotificationService(test_db, email_sender=sender)

        notification = service.create("ops", "manual", "FYI", "Nothing urgent", Severity.MEDIUM)

        assert notification.sent_email is False
        sender.send.assert_not_called()

    def test_email_failure_keeps_notification(self, test_db, make_profile, sender):
        make_profile("ops")
        sender.send.side_effect = RuntimeError("smtp down")
        service = NotificationService(test_db, email_sender=sender, email_timeout=1)

        notification = service.create("ops", "manual", "Field visit", "Visit Salem", Severity.HIGH)

        assert notification.sent_email is False
        assert test_db.get(Notification, notification.id) is not None


class TestReadTracking:
    """Tests for unread listing and mark-read ownership."""

    def test_unread_and_mark_read(self, test_db):
        service = NotificationService(test_db)
        first = service.create("alice", "manual", "One", "First", Severity.LOW)
        second = service.create("alice", "manual", "Two", "Second", Severity.LOW)
        service.create("bob", "manual", "Other", "Not Alice's", Severity.LOW)

        assert [n.id for n in service.unread("alice")] == [second.id, first.id]

        assert service.mark_read(first.id, "bob") is False
        assert service.mark_read(first.id, "alice") is True
        assert service.mark_read(first.id, "alice") is False
        assert [n.id for n in service.unread("alice")] == [second.id]


class TestRiskAlerts:
    """Tests for the critical risk alert scan."""

    @pytest.fixture
    def scenario(self, make_unit, make_profile):
        chennai = make_unit(name="Chennai Commercial Complex", district="Chennai", risk_score=85.5, tier="RED")
        salem = make_unit(name="Salem Manufacturing Unit", district="Salem", risk_score=91.2, tier="RED",
                          arrears=125000.0)
        make_unit(name="Trichy IT Campus", district="Trichy", risk_score=75.0, tier="RED")
        make_unit(name="Madurai Residential Society", district="Madurai", risk_score=25.8, tier="GREEN")
        make_profile("ops-chennai", district_access=["Chennai"])
        make_profile("admin", district_access=[])
        make_profile("quiet", email_notifications=False)
        return chennai, salem

    def test_alerts_respect_district_access(self, test_db, scenario):
        chennai, salem = scenario

        result = NotificationService(test_db).send_risk_alerts(min_score=80)

        assert result["units_checked"] == 2
        assert result["alerts_sent"] == 3
        assert result["duplicates_skipped"] == 0
        assert [u["name"] for u in result["alerted_units"]] == [chennai.name, salem.name]

        rows = test_db.query(Notification).order_by(Notification.id).all()
        assert sorted((n.user_id, n.unit_id) for n in rows) == sorted([
            ("ops-chennai", chennai.id), ("admin", chennai.id), ("admin", salem.id),
        ])
        salem_alert = next(n for n in rows if n.unit_id == salem.id)
        assert salem_alert.title == "Critical Risk Alert: Salem Manufacturing Unit"
        assert salem_alert.severity == "HIGH"
        assert salem_alert.meta == {"risk_score": 91.2, "district": "Salem", "arrears": 125000.0}

    def test_repeat_scan_same_day_deduplicated(self, test_db, scenario):
        service = NotificationService(test_db)
        service.send_risk_alerts(min_score=80)

        result = service.send_risk_alerts(min_score=80)

        assert result["alerts_sent"] == 0
        assert result["duplicates_skipped"] == 3
        assert result["alerted_units"] == []
        assert test_db.query(Notification).count() == 3

    def test_alert_emails(self, test_db, scenario, sender):
        NotificationService(test_db, email_sender=sender).send_risk_alerts(min_score=80)

        subjects = [call[0][1] for call in sender.send.call_args_list]
        assert sorted(subjects) == sorted([
            "Critical Risk Alert: Chennai Commercial Complex",
            "Critical Risk Alert: Chennai Commercial Complex",
            "Critical Risk Alert: Salem Manufacturing Unit",
        ])
