"""
Notification Delivery

Email and Slack delivery plus message formatting. Delivery is always a
side effect: callers run it through run_best_effort so a slow or failing
channel never blocks or fails the operation that triggered it.
"""
import smtplib
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional

import requests

from config.settings import settings
from src.gridrisk.exceptions import NotificationDeliveryError
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

# Shared pool for fire-and-forget side effects
_side_effect_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify")


def run_best_effort(task: Callable[[], Any], timeout: Optional[float] = None, name: str = "side_effect") -> Any:
    """
    Run a side effect with a bounded wait.

    The task runs on a worker thread. Failures and timeouts are logged and
    swallowed; a timed-out task keeps running in the background.

    Args:
        task: Zero-argument callable
        timeout: Seconds to wait (defaults to settings.notification_timeout_seconds)
        name: Label for log events

    Returns:
        The task result, or None if it failed or timed out
    """
    wait = settings.notification_timeout_seconds if timeout is None else timeout
    future = _side_effect_pool.submit(task)
    try:
        return future.result(timeout=wait)
    except FutureTimeout:
        logger.warning("side_effect_timeout", task=name, timeout=wait)
        return None
    except Exception as e:
        logger.error("side_effect_failed", task=name, error=str(e), error_type=type(e).__name__)
        return None


class EmailSender:
    """
    SMTP email delivery.

    Args:
        enabled: Send emails at all (defaults to settings.alert_enable_email)
        host / port / user / password / from_email / use_tls: SMTP settings
        timeout: SMTP socket timeout in seconds
    """

    def __init__(
        self,
        enabled: Optional[bool] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        self.enabled = settings.alert_enable_email if enabled is None else enabled
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.from_email = from_email or settings.smtp_from_email
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.timeout = timeout or settings.notification_timeout_seconds

    def send(self, to_email: str, subject: str, body: str, html: bool = False) -> bool:
        """
        Send one email.

        Returns:
            True if sent, False if email delivery is disabled

        Raises:
            NotificationDeliveryError: SMTP failure
        """
        if not self.enabled:
            logger.info("email_notifications_disabled")
            return False
        if not to_email:
            raise NotificationDeliveryError("Recipient email address missing")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(body, "html" if html else "plain", "utf-8"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user and self.password:
                    smtp.login(self.user, self.password)
                smtp.sendmail(self.from_email, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError(f"SMTP delivery failed: {e}") from e

        logger.info("email_notification_sent", to=to_email, subject=subject)
        return True


def send_slack_notification(message: str, webhook_url: Optional[str] = None) -> bool:
    """
    Send notification to Slack via webhook.

    Args:
        message: Message to send
        webhook_url: Slack webhook URL (defaults to settings.alert_slack_webhook)

    Returns:
        True if successful, False otherwise
    """
    if not settings.alert_enable_slack:
        logger.info("slack_notifications_disabled")
        return False

    webhook_url = webhook_url or settings.alert_slack_webhook
    if not webhook_url:
        logger.warning("slack_webhook_url_not_configured")
        return False

    try:
        response = requests.post(webhook_url, json={"text": message}, timeout=10)
    except requests.RequestException as e:
        logger.error("slack_notification_error", error=str(e))
        return False

    if response.status_code == 200:
        logger.info("slack_notification_sent")
        return True

    logger.error("slack_notification_failed",
                 status_code=response.status_code,
                 response=response.text)
    return False


def format_report_ready_email(report_title: str, report_type: str, report_id: str, generated_at: str) -> Dict[str, str]:
    """
    Subject and body for a report-ready email.
    """
    url = f"{settings.dashboard_url}/reports/{report_id}"
    body = "\n".join([
        f"Your {report_type.replace('_', ' ')} report is ready.",
        "",
        f"Title: {report_title}",
        f"Generated: {generated_at}",
        f"View or export: {url}",
        "",
        "Reports are available for 30 days.",
    ])
    return {"subject": f"Report Ready: {report_title}", "body": body}


def format_risk_alert_email(
    unit_name: str,
    unit_urn: str,
    district: str,
    risk_score: float,
    arrears: Optional[float],
) -> Dict[str, str]:
    """
    Subject and body for a critical risk alert email.
    """
    body = "\n".join([
        f"Unit {unit_name} ({unit_urn}) in {district} requires immediate attention.",
        "",
        f"Risk score: {risk_score:.1f}/100",
        f"Outstanding arrears: {arrears or 0:,.2f}",
        f"Dashboard: {settings.dashboard_url}",
    ])
    return {"subject": f"Critical Risk Alert: {unit_name}", "body": body}


def format_risk_alert_summary(alerts: List[Dict[str, Any]]) -> str:
    """
    Format a risk alert scan into a Slack message.

    Args:
        alerts: Alerted units with name, urn, district and risk_score

    Returns:
        Formatted message string
    """
    if not alerts:
        return "No new critical risk alerts."

    lines = [
        f"*{len(alerts)} Critical Risk Alerts Raised*",
        "",
    ]
    for i, alert in enumerate(alerts[:10], 1):
        lines.append(
            f"{i}. *{alert.get('name', 'Unknown')}* ({alert.get('urn', '?')}) - "
            f"{alert.get('district', 'Unknown')} | Score: {alert.get('risk_score', 0):.1f}"
        )
    if len(alerts) > 10:
        lines.append(f"... and {len(alerts) - 10} more units")

    return "\n".join(lines)
