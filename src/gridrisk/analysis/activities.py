"""
Activity Log

Records who did what, optionally against a unit, and serves per-user,
per-unit and audit-trail views of the log.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk.db.models import UserActivity
from src.gridrisk.db.repository import ProfileRepository, UnitRepository, UserActivityRepository
from src.gridrisk.exceptions import DataFetchError, InvalidFilterError, NotFoundError, PermissionDeniedError
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

AUDIT_ROLES = ("admin", "manager")


def _utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class ActivityService:
    def __init__(self, session: Session):
        self.session = session
        self.activities = UserActivityRepository()
        self.units = UnitRepository()
        self.profiles = ProfileRepository()

    def log(
        self,
        user_id: str,
        action: str,
        unit_id: Optional[int] = None,
        description: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> UserActivity:
        """
        Append one entry to the activity log.

        Raises:
            InvalidFilterError: Empty action name
            NotFoundError: unit_id does not name an existing unit
        """
        if not action or not action.strip():
            raise InvalidFilterError("Activity action is required")
        if unit_id is not None and self.units.get_by_id(self.session, unit_id) is None:
            raise NotFoundError(f"Unit {unit_id} not found")

        try:
            activity = self.activities.create(
                self.session,
                user_id=user_id,
                unit_id=unit_id,
                action=action.strip(),
                description=description,
                meta=meta,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DataFetchError(f"Failed to record activity: {e}") from e

        logger.info("activity_logged", user_id=user_id, action=activity.action, unit_id=unit_id)
        return activity

    def for_user(self, user_id: str, limit: Optional[int] = None) -> List[UserActivity]:
        return self.activities.for_user(self.session, user_id, limit or settings.activity_user_limit)

    def for_unit(self, unit_id: int, limit: Optional[int] = None) -> List[UserActivity]:
        return self.activities.for_unit(self.session, unit_id, limit or settings.activity_unit_limit)

    def audit_trail(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_id: Optional[str] = None,
        unit_id: Optional[int] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
        requested_by: Optional[str] = None,
    ) -> List[UserActivity]:
        """
        Activity entries across users, newest first.

        When requested_by is given the caller must hold an admin or manager
        profile.

        Raises:
            PermissionDeniedError: The caller may not read the audit trail
            InvalidFilterError: start is after end
        """
        if requested_by is not None:
            caller = self.profiles.get_by_id(self.session, requested_by)
            if caller is None or caller.role not in AUDIT_ROLES:
                raise PermissionDeniedError(f"User {requested_by} may not read the audit trail")
        start, end = _utc(start), _utc(end)
        if start is not None and end is not None and start > end:
            raise InvalidFilterError("Audit trail start must not be after end")
        return self.activities.audit_trail(
            self.session,
            start=start,
            end=end,
            user_id=user_id,
            unit_id=unit_id,
            action_contains=action,
            limit=limit or settings.activity_audit_limit,
        )
