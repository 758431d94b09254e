"""
Notifications Router

Endpoints for creating, listing and reading notifications, and for the
risk alert scan.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from src.gridrisk.api.dependencies import get_db, get_email_sender, get_user_id
from src.gridrisk.api.schemas import NotificationCreate, NotificationOut, RiskAlertScanResult
from src.gridrisk.notifications.dispatch import EmailSender
from src.gridrisk.notifications.service import NotificationService

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def get_notification_service(
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
) -> NotificationService:
    return NotificationService(db, email_sender=email_sender)


@router.post("/", response_model=NotificationOut, status_code=201)
def create_notification(
    request: NotificationCreate,
    service: NotificationService = Depends(get_notification_service),
):
    notification = service.create(
        user_id=request.user_id,
        notification_type=request.type,
        title=request.title,
        message=request.message,
        severity=request.severity,
        unit_id=request.unit_id,
        metadata=request.metadata,
    )
    service.session.commit()
    return NotificationOut.model_validate(notification)


@router.get("/unread", response_model=List[NotificationOut])
def unread_notifications(
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    """
    Unread notifications for the caller, newest first.
    """
    return [NotificationOut.model_validate(n) for n in service.unread(user_id, limit)]


@router.post("/{notification_id}/read", status_code=204)
def mark_read(
    notification_id: int,
    user_id: str = Depends(get_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    if not service.mark_read(notification_id, user_id):
        raise HTTPException(status_code=404, detail="Unread notification not found")
    service.session.commit()


@router.post("/risk-alerts", response_model=RiskAlertScanResult)
def send_risk_alerts(service: NotificationService = Depends(get_notification_service)):
    """
    Scan critical units and raise risk alert notifications.
    """
    result = service.send_risk_alerts()
    service.session.commit()
    return RiskAlertScanResult(
        alerts_sent=result["alerts_sent"],
        units_checked=result["units_checked"],
        duplicates_skipped=result["duplicates_skipped"],
    )
