"""
Tests for Notification Delivery

Tests email and Slack delivery, best-effort execution and message formatting.
"""
import smtplib
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from src.gridrisk.exceptions import NotificationDeliveryError
from src.gridrisk.notifications.dispatch import (
    EmailSender,
    format_report_ready_email,
    format_risk_alert_email,
    format_risk_alert_summary,
    run_best_effort,
    send_slack_notification,
)


class TestRunBestEffort:
    """Tests for bounded side-effect execution."""

    def test_returns_result(self):
        assert run_best_effort(lambda: 42, timeout=1) == 42

    def test_swallows_errors(self):
        def boom():
            raise RuntimeError("boom")

        assert run_best_effort(boom, timeout=1) is None

    def test_times_out(self):
        """Test that a slow task does not block the caller."""
        release = threading.Event()

        result = run_best_effort(lambda: release.wait(5), timeout=0.05, name="slow")
        release.set()

        assert result is None


class TestEmailSender:
    """Tests for SMTP delivery."""

    def test_disabled(self):
        assert EmailSender(enabled=False).send("a@example.com", "s", "b") is False

    @patch('src.gridrisk.notifications.dispatch.smtplib.SMTP')
    def test_send_success(self, mock_smtp):
        """Test sending an email over TLS with login."""
        server = mock_smtp.return_value.__enter__.return_value
        sender = EmailSender(enabled=True, host="smtp.test", port=2525, user="u", password="p",
                             from_email="alerts@test", use_tls=True)

        assert sender.send("ops@example.com", "Subject", "Body") is True

        mock_smtp.assert_called_once_with("smtp.test", 2525, timeout=sender.timeout)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        from_addr, to_addrs, message = server.sendmail.call_args[0]
        assert from_addr == "alerts@test"
        assert to_addrs == ["ops@example.com"]
        assert "Subject: Subject" in message

    @patch('src.gridrisk.notifications.dispatch.smtplib.SMTP')
    def test_smtp_failure_raises(self, mock_smtp):
        mock_smtp.return_value.__enter__.return_value.sendmail.side_effect = smtplib.SMTPException("rejected")
        sender = EmailSender(enabled=True, user="", password="", use_tls=False)

        with pytest.raises(NotificationDeliveryError):
            sender.send("ops@example.com", "Subject", "Body")

    def test_missing_recipient(self):
        with pytest.raises(NotificationDeliveryError):
            EmailSender(enabled=True).send("", "Subject", "Body")


class TestSlackNotifications:
    """Tests for Slack webhook delivery."""

    @patch('src.gridrisk.notifications.dispatch.requests.post')
    @patch('src.gridrisk.notifications.dispatch.settings')
    def test_send_success(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = "https://hooks.slack.com/test"
        mock_post.return_value = MagicMock(status_code=200)

        assert send_slack_notification("Test message") is True
        assert mock_post.call_args[1]["json"]["text"] == "Test message"

    @patch('src.gridrisk.notifications.dispatch.settings')
    def test_disabled(self, mock_settings):
        mock_settings.alert_enable_slack = False

        assert send_slack_notification("Test message") is False

    @patch('src.gridrisk.notifications.dispatch.requests.post')
    @patch('src.gridrisk.notifications.dispatch.settings')
    def test_request_error(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = "https://hooks.slack.com/test"
        mock_post.side_effect = requests.Timeout("slow")

        assert send_slack_notification("Test message") is False

    @patch('src.gridrisk.notifications.dispatch.requests.post')
    @patch('src.gridrisk.notifications.dispatch.settings')
    def test_bad_status(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = "https://hooks.slack.com/test"
        mock_post.return_value = MagicMock(status_code=500, text="error")

        assert send_slack_notification("Test message") is False


class TestFormatting:
    """Tests for message formatting."""

    def test_report_ready_email(self):
        email = format_report_ready_email("Daily Risk Summary", "daily_summary", "abc-123", "2024-01-15T06:00:00")

        assert email["subject"] == "Report Ready: Daily Risk Summary"
        assert "daily summary report is ready" in email["body"]
        assert "/reports/abc-123" in email["body"]

    def test_risk_alert_email(self):
        email = format_risk_alert_email("Salem Manufacturing Unit", "TN004567890", "Salem", 91.2, None)

        assert email["subject"] == "Critical Risk Alert: Salem Manufacturing Unit"
        assert "91.2/100" in email["body"]
        assert "0.00" in email["body"]

    def test_risk_alert_summary(self):
        alerts = [
            {"name": f"Unit {i}", "urn": f"TN{i}", "district": "Salem", "risk_score": 90.0 + i / 10}
            for i in range(12)
        ]

        message = format_risk_alert_summary(alerts)

        assert message.startswith("*12 Critical Risk Alerts Raised*")
        assert "10. *Unit 9*" in message
        assert "Unit 10" not in message
        assert "... and 2 more units" in message

    def test_risk_alert_summary_empty(self):
        assert format_risk_alert_summary([]) == "No new critical risk alerts."
