"""
Repository Pattern for Data Access

Provides CRUD operations and domain-specific queries for all models.
"""
from datetime import datetime
from typing import List, Optional, Dict, Any, Sequence, Type, TypeVar

from sqlalchemy import select, update, func, and_, or_, desc
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql.elements import ColumnElement

from src.gridrisk.db.models import (
    Unit,
    AlertHistory,
    DistrictStat,
    Report,
    Notification,
    Profile,
    StoredFile,
    AIAnalysis,
    UserActivity,
)
from src.gridrisk.db.session import with_retry
from src.gridrisk.models.risk import ReportStatus, RiskTier
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class BaseRepository:
    """
    Base repository with common CRUD operations.

    Generic repository that can be extended for specific models.
    """

    def __init__(self, model: Type[T]):
        """
        Initialize repository with model class.

        Args:
            model: SQLAlchemy model class
        """
        self.model = model

    def get_by_id(self, session: Session, id_value: Any) -> Optional[T]:
        """
        Get single record by primary key.

        Args:
            session: Database session
            id_value: Primary key value

        Returns:
            Model instance or None
        """
        result = session.get(self.model, id_value)
        logger.debug(
            "repository_get_by_id",
            model=self.model.__name__,
            id=id_value,
            found=result is not None
        )
        return result

    def get_all(self, session: Session, limit: Optional[int] = None, offset: int = 0) -> List[T]:
        """
        Get all records with optional pagination.

        Args:
            session: Database session
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            List of model instances
        """
        query = select(self.model).offset(offset)
        if limit:
            query = query.limit(limit)

        result = session.execute(query).scalars().all()
        logger.debug(
            "repository_get_all",
            model=self.model.__name__,
            count=len(result),
            limit=limit,
            offset=offset
        )
        return result

    def create(self, session: Session, **kwargs) -> T:
        """
        Create new record.

        Args:
            session: Database session
            **kwargs: Model field values

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        session.add(instance)
        session.flush()
        logger.info("repository_created", model=self.model.__name__, id=getattr(instance, 'id', None))
        return instance

    def update(self, session: Session, id_value: Any, **kwargs) -> Optional[T]:
        """
        Update existing record.

        Args:
            session: Database session
            id_value: Primary key value
            **kwargs: Fields to update

        Returns:
            Updated model instance or None
        """
        instance = self.get_by_id(session, id_value)
        if not instance:
            logger.warning("repository_update_not_found", model=self.model.__name__, id=id_value)
            return None

        for key, value in kwargs.items():
            setattr(instance, key, value)

        session.flush()
        logger.info("repository_updated", model=self.model.__name__, id=id_value)
        return instance

    def delete(self, session: Session, id_value: Any) -> bool:
        """
        Delete record (hard delete).

        Args:
            session: Database session
            id_value: Primary key value

        Returns:
            True if deleted, False if not found
        """
        instance = self.get_by_id(session, id_value)
        if not instance:
            logger.warning("repository_delete_not_found", model=self.model.__name__, id=id_value)
            return False

        session.delete(instance)
        session.flush()
        logger.info("repository_deleted", model=self.model.__name__, id=id_value)
        return True

    def count(self, session: Session) -> int:
        """
        Count total records.

        Args:
            session: Database session

        Returns:
            Total count
        """
        count = session.scalar(select(func.count()).select_from(self.model))
        logger.debug("repository_count", model=self.model.__name__, count=count)
        return count


class UnitRepository(BaseRepository):
    """Repository for Unit model with filtered fetches."""

    SORTABLE_FIELDS = ("risk_score", "arrears", "name", "district", "last_updated", "peer_percentile")

    def __init__(self):
        super().__init__(Unit)

    @with_retry(max_retries=2, retry_delay=1)
    def fetch(
        self,
        session: Session,
        predicates: Sequence[ColumnElement] = (),
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        with_details: bool = False,
    ) -> List[Unit]:
        """
        Fetch units matching all predicates.

        Rows come back in a deterministic order (id ascending unless
        order_by is given) so downstream tie-breaking is stable.

        Args:
            session: Database session
            predicates: Boolean expressions combined with AND
            order_by: Order clauses (defaults to Unit.id)
            limit: Maximum number of rows
            offset: Number of rows to skip
            with_details: Eagerly load risk drivers and alert history

        Returns:
            List of units
        """
        query = select(Unit)
        if predicates:
            query = query.where(and_(*predicates))
        query = query.order_by(*(order_by or (Unit.id,)))
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        if with_details:
            query = query.options(selectinload(Unit.shap_drivers), selectinload(Unit.alert_history))

        units = session.execute(query).scalars().all()
        logger.debug("units_fetched", count=len(units), limit=limit, offset=offset)
        return list(units)

    def count_matching(self, session: Session, predicates: Sequence[ColumnElement] = ()) -> int:
        query = select(func.count()).select_from(Unit)
        if predicates:
            query = query.where(and_(*predicates))
        return session.scalar(query) or 0

    def get_by_urn(self, session: Session, urn: str) -> Optional[Unit]:
        return session.execute(select(Unit).where(Unit.urn == urn)).scalar_one_or_none()

    def get_with_details(self, session: Session, unit_id: int) -> Optional[Unit]:
        """
        Get one unit with risk drivers and alert history loaded.
        """
        query = (
            select(Unit)
            .where(Unit.id == unit_id)
            .options(selectinload(Unit.shap_drivers), selectinload(Unit.alert_history))
        )
        return session.execute(query).scalar_one_or_none()

    def updated_since(self, session: Session, since: datetime, predicates: Sequence[ColumnElement] = ()) -> List[Unit]:
        """
        Get units refreshed by ingestion at or after a timestamp.
        """
        return self.fetch(session, [Unit.last_updated >= since, *predicates])

    def high_risk(
        self,
        session: Session,
        limit: int,
        predicates: Sequence[ColumnElement] = (),
    ) -> List[Unit]:
        """
        Get RED tier units, highest score first, with drivers and alerts loaded.

        Args:
            session: Database session
            limit: Maximum number of units
            predicates: Additional filters

        Returns:
            List of high-risk units
        """
        return self.fetch(
            session,
            [Unit.tier == RiskTier.RED.value, *predicates],
            order_by=(desc(Unit.risk_score), Unit.id),
            limit=limit,
            with_details=True,
        )

    def alert_candidates(self, session: Session, min_score: float) -> List[Unit]:
        """
        Get RED tier units at or above a score, for risk alert scans.
        """
        return self.fetch(
            session,
            [Unit.tier == RiskTier.RED.value, Unit.risk_score >= min_score],
        )

    def text_search(self, session: Session, query_text: str, limit: int = 10) -> List[Unit]:
        pattern = f"%{query_text}%"
        return self.fetch(
            session,
            [or_(Unit.name.ilike(pattern), Unit.urn.ilike(pattern))],
            limit=limit,
        )


class AlertHistoryRepository(BaseRepository):
    """Repository for AlertHistory model."""

    def __init__(self):
        super().__init__(AlertHistory)

    def created_since(self, session: Session, since: datetime) -> List[AlertHistory]:
        """
        Get alert events recorded at or after a timestamp.
        """
        query = (
            select(AlertHistory)
            .where(AlertHistory.created_at >= since)
            .order_by(AlertHistory.created_at, AlertHistory.id)
        )
        return list(session.execute(query).scalars().all())


class DistrictStatRepository(BaseRepository):
    """Repository for DistrictStat model."""

    def __init__(self):
        super().__init__(DistrictStat)

    def compliance_by_district(self, session: Session) -> Dict[str, Optional[float]]:
        """
        Get SLA compliance percentage keyed by district name.
        """
        rows = session.execute(select(DistrictStat.name, DistrictStat.sla_compliance)).all()
        return {name: compliance for name, compliance in rows}

    def names_like(self, session: Session, query_text: str, limit: int = 5) -> List[str]:
        query = (
            select(DistrictStat.name)
            .where(DistrictStat.name.ilike(f"%{query_text}%"))
            .order_by(DistrictStat.name)
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())

    def replace_counts(self, session: Session, counts: Sequence[Dict[str, Any]]) -> Dict[str, int]:
        """
        Overwrite per-district counts and averages.

        Rows are matched by district name. sla_compliance is never touched;
        districts absent from counts are zeroed rather than deleted so their
        compliance figure survives.

        Args:
            session: Database session
            counts: One dict per district with name, total_units, red_count,
                amber_count, green_count and avg_risk_score

        Returns:
            Numbers of created, updated and zeroed rows
        """
        existing = {stat.name: stat for stat in session.execute(select(DistrictStat)).scalars().all()}
        created = updated = 0

        for row in counts:
            stat = existing.pop(row["name"], None)
            if stat is None:
                session.add(DistrictStat(**row))
                created += 1
            else:
                for key, value in row.items():
                    setattr(stat, key, value)
                updated += 1

        for stat in existing.values():
            stat.total_units = stat.red_count = stat.amber_count = stat.green_count = 0
            stat.avg_risk_score = None

        session.flush()
        result = {"created": created, "updated": updated, "zeroed": len(existing)}
        logger.info("district_stats_replaced", **result)
        return result


class ReportRepository(BaseRepository):
    """Repository for Report model with one-way status transitions."""

    def __init__(self):
        super().__init__(Report)

    def get_for_user(self, session: Session, report_id: str, user_id: str) -> Optional[Report]:
        query = select(Report).where(
            and_(Report.id == report_id, Report.generated_by == user_id)
        )
        return session.execute(query).scalar_one_or_none()

    def list_for_user(self, session: Session, user_id: str, limit: int = 20) -> List[Report]:
        query = (
            select(Report)
            .where(Report.generated_by == user_id)
            .order_by(desc(Report.created_at), desc(Report.id))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())

    def finalize(self, session: Session, report_id: str, status: ReportStatus, **values) -> bool:
        """
        Move a report out of 'generating' exactly once.

        Issues UPDATE ... WHERE status = 'generating'; a report that already
        reached a terminal state is left untouched.

        Args:
            session: Database session
            report_id: Report id
            status: Terminal status (ready or failed)
            **values: Additional columns to write with the status

        Returns:
            True if this call performed the transition
        """
        if not status.is_terminal:
            raise ValueError("finalize requires a terminal status")

        stmt = (
            update(Report)
            .where(and_(Report.id == report_id, Report.status == ReportStatus.GENERATING.value))
            .values(status=status.value, **values)
            .execution_options(synchronize_session="fetch")
        )
        result = session.execute(stmt)
        session.flush()

        transitioned = result.rowcount == 1
        logger.info(
            "report_status_finalized" if transitioned else "report_status_finalize_skipped",
            report_id=report_id,
            status=status.value,
        )
        return transitioned

    def search(self, session: Session, query_text: str, user_id: str, limit: int = 5) -> List[Report]:
        """Match title or description among the user's own reports."""
        pattern = f"%{query_text}%"
        query = (
            select(Report)
            .where(Report.generated_by == user_id)
            .where(or_(Report.title.ilike(pattern), Report.description.ilike(pattern)))
            .order_by(desc(Report.created_at))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())


class NotificationRepository(BaseRepository):
    """Repository for Notification model."""

    def __init__(self):
        super().__init__(Notification)

    def unread_for_user(self, session: Session, user_id: str, limit: int = 10) -> List[Notification]:
        query = (
            select(Notification)
            .where(and_(Notification.user_id == user_id, Notification.read_at.is_(None)))
            .options(selectinload(Notification.unit))
            .order_by(desc(Notification.created_at), desc(Notification.id))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())

    def mark_read(self, session: Session, notification_id: int, user_id: str, read_at: datetime) -> bool:
        """
        Set read_at on an unread notification owned by the user.

        Returns:
            True if a notification was updated
        """
        stmt = (
            update(Notification)
            .where(
                and_(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                    Notification.read_at.is_(None),
                )
            )
            .values(read_at=read_at)
            .execution_options(synchronize_session="fetch")
        )
        result = session.execute(stmt)
        session.flush()
        return result.rowcount == 1

    def exists_since(
        self,
        session: Session,
        user_id: str,
        unit_id: int,
        notification_type: str,
        since: datetime,
    ) -> bool:
        query = select(Notification.id).where(
            and_(
                Notification.user_id == user_id,
                Notification.unit_id == unit_id,
                Notification.type == notification_type,
                Notification.created_at >= since,
            )
        ).limit(1)
        return session.execute(query).first() is not None

    def search(self, session: Session, query_text: str, user_id: str, limit: int = 5) -> List[Notification]:
        pattern = f"%{query_text}%"
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .where(or_(Notification.title.ilike(pattern), Notification.message.ilike(pattern)))
            .order_by(desc(Notification.created_at))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())


class ProfileRepository(BaseRepository):
    """Repository for Profile model."""

    def __init__(self):
        super().__init__(Profile)

    def with_roles(self, session: Session, roles: Sequence[str]) -> List[Profile]:
        query = select(Profile).where(Profile.role.in_(list(roles))).order_by(Profile.id)
        return list(session.execute(query).scalars().all())

    def email_subscribers(self, session: Session) -> List[Profile]:
        query = select(Profile).where(Profile.email_notifications.is_(True)).order_by(Profile.id)
        return list(session.execute(query).scalars().all())


class StoredFileRepository(BaseRepository):
    """Repository for StoredFile model."""

    def __init__(self):
        super().__init__(StoredFile)

    def list_files(
        self,
        session: Session,
        user_id: Optional[str] = None,
        bucket_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[StoredFile]:
        query = select(StoredFile)
        if user_id:
            query = query.where(StoredFile.user_id == user_id)
        if bucket_id:
            query = query.where(StoredFile.bucket_id == bucket_id)
        query = query.order_by(desc(StoredFile.created_at), StoredFile.id).limit(limit)
        return list(session.execute(query).scalars().all())


class AIAnalysisRepository(BaseRepository):
    """Repository for AIAnalysis model."""

    def __init__(self):
        super().__init__(AIAnalysis)

    def for_unit(self, session: Session, unit_id: int, limit: int = 10) -> List[AIAnalysis]:
        query = (
            select(AIAnalysis)
            .where(AIAnalysis.unit_id == unit_id)
            .order_by(desc(AIAnalysis.created_at), desc(AIAnalysis.id))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())


class UserActivityRepository(BaseRepository):
    """Repository for UserActivity model."""

    def __init__(self):
        super().__init__(UserActivity)

    def for_user(self, session: Session, user_id: str, limit: int = 50) -> List[UserActivity]:
        query = (
            select(UserActivity)
            .where(UserActivity.user_id == user_id)
            .options(selectinload(UserActivity.unit))
            .order_by(desc(UserActivity.created_at), desc(UserActivity.id))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())

    def for_unit(self, session: Session, unit_id: int, limit: int = 20) -> List[UserActivity]:
        query = (
            select(UserActivity)
            .where(UserActivity.unit_id == unit_id)
            .order_by(desc(UserActivity.created_at), desc(UserActivity.id))
            .limit(limit)
        )
        return list(session.execute(query).scalars().all())

    def audit_trail(
        self,
        session: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_id: Optional[str] = None,
        unit_id: Optional[int] = None,
        action_contains: Optional[str] = None,
        limit: int = 100,
    ) -> List[UserActivity]:
        """
        Query the activity log with optional bounds and filters.

        Args:
            session: Database session
            start: Earliest created_at (inclusive)
            end: Latest created_at (inclusive)
            user_id: Only this user's actions
            unit_id: Only actions on this unit
            action_contains: Case-insensitive substring of the action name
            limit: Maximum number of entries

        Returns:
            Activities, newest first
        """
        conditions = []
        if start is not None:
            conditions.append(UserActivity.created_at >= start)
        if end is not None:
            conditions.append(UserActivity.created_at <= end)
        if user_id:
            conditions.append(UserActivity.user_id == user_id)
        if unit_id is not None:
            conditions.append(UserActivity.unit_id == unit_id)
        if action_contains:
            conditions.append(UserActivity.action.ilike(f"%{action_contains}%"))

        query = select(UserActivity).options(selectinload(UserActivity.unit))
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(UserActivity.created_at), desc(UserActivity.id)).limit(limit)
        return list(session.execute(query).scalars().all())
