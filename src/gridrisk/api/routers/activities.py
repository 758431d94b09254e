"""
Activities Router

Endpoints for recording user activity and reading the activity log.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from src.gridrisk.analysis.activities import ActivityService
from src.gridrisk.api.dependencies import get_db, get_user_id
from src.gridrisk.api.schemas import ActivityCreate, ActivityOut

router = APIRouter(prefix="/api/v1/activities", tags=["activities"])


@router.post("/", response_model=ActivityOut, status_code=201)
def log_activity(
    request: ActivityCreate,
    http_request: Request,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    """
    Record an action by the caller. Client address and user agent come
    from the request.
    """
    activity = ActivityService(db).log(
        user_id=user_id,
        action=request.action,
        unit_id=request.unit_id,
        description=request.description,
        meta=request.metadata,
        ip_address=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("user-agent"),
    )
    return ActivityOut.model_validate(activity)


@router.get("/me", response_model=List[ActivityOut])
def my_activities(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return [ActivityOut.model_validate(a) for a in ActivityService(db).for_user(user_id, limit)]


@router.get("/units/{unit_id}", response_model=List[ActivityOut])
def unit_activities(
    unit_id: int,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return [ActivityOut.model_validate(a) for a in ActivityService(db).for_unit(unit_id, limit)]


@router.get("/audit", response_model=List[ActivityOut])
def audit_trail(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    user: Optional[str] = Query(None, description="Only this user's actions"),
    unit_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, description="Case-insensitive substring of the action"),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    """
    Activity across all users. Restricted to admin and manager profiles.
    """
    activities = ActivityService(db).audit_trail(
        start=start,
        end=end,
        user_id=user,
        unit_id=unit_id,
        action=action,
        limit=limit,
        requested_by=user_id,
    )
    return [ActivityOut.model_validate(a) for a in activities]
