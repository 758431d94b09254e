"""
Notifications Module

In-app notifications, risk alert scans and email/Slack delivery.
"""
from src.gridrisk.notifications.dispatch import EmailSender, run_best_effort, send_slack_notification
from src.gridrisk.notifications.service import NotificationService

__all__ = [
    "EmailSender",
    "run_best_effort",
    "send_slack_notification",
    "NotificationService",
]
