"""
SQLAlchemy ORM Models

Units and their risk drivers and alert history are written by the external
ingestion process and are read-only from the pipeline's perspective.
Reports, notifications and file records are owned by this application.
"""
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    String, Integer, Float, Date, DateTime, Boolean, Text,
    ForeignKey, CheckConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from src.gridrisk.db.base import Base, JSONType, TimestampMixin, CreatedAtMixin
from src.gridrisk.models.risk import ReportStatus


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Unit(Base, TimestampMixin):
    """
    Monitored consumer account.

    The stored tier is authoritative; it is supplied pre-computed by the
    upstream ingestion process together with the risk score.
    """
    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    urn: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        comment="Unique reference number"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    district: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    service_no: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Service connection number"
    )

    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    tier: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="Risk tier (GREEN, AMBER, RED)"
    )

    kwh_consumption: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Monthly consumption readings in kWh, oldest first"
    )
    arrears: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        default=0.0,
        comment="Outstanding balance"
    )
    disconnect_flag: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    peer_percentile: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="Timestamp of the last ingestion update"
    )

    shap_drivers: Mapped[list["ShapDriver"]] = relationship(
        "ShapDriver",
        back_populates="unit",
        cascade="all, delete-orphan",
        order_by="ShapDriver.position",
    )
    alert_history: Mapped[list["AlertHistory"]] = relationship(
        "AlertHistory",
        back_populates="unit",
        cascade="all, delete-orphan",
        order_by="AlertHistory.alert_date",
    )

    __table_args__ = (
        CheckConstraint("risk_score >= 0 AND risk_score <= 100", name="check_unit_risk_score_range"),
        CheckConstraint("tier IN ('GREEN', 'AMBER', 'RED')", name="check_unit_tier"),
        Index("idx_units_tier_score", "tier", "risk_score"),
    )

    def __repr__(self):
        return f"<Unit(urn={self.urn}, tier={self.tier}, score={self.risk_score})>"


class ShapDriver(Base, CreatedAtMixin):
    """
    Named feature contribution explaining a unit's risk score.
    """
    __tablename__ = "shap_drivers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    feature: Mapped[str] = mapped_column(String(100), nullable=False)
    impact: Mapped[float] = mapped_column(Float, nullable=False, comment="Signed contribution")
    value: Mapped[str] = mapped_column(String(255), nullable=False, comment="Observed value")
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    unit: Mapped["Unit"] = relationship("Unit", back_populates="shap_drivers")


class AlertHistory(Base, CreatedAtMixin):
    """
    Historical alert event raised against a unit.
    """
    __tablename__ = "alert_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    alert_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, comment="Tier label")
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    unit: Mapped["Unit"] = relationship("Unit", back_populates="alert_history")


class DistrictStat(Base):
    """
    Externally maintained district statistics.

    Only the SLA compliance percentage is authoritative for reports; tier
    counts and averages are recomputed from units on demand.
    """
    __tablename__ = "district_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    total_units: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    red_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amber_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    green_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    avg_risk_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sla_compliance: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="SLA compliance percentage (0-100)"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class Report(Base, CreatedAtMixin):
    """
    Generated report artifact.

    Status moves once from 'generating' to 'ready' or 'failed'; see
    ReportRepository.finalize for the compare-and-set write.
    """
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    report_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReportStatus.GENERATING.value,
        index=True
    )
    filters: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    generated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('generating', 'ready', 'failed')",
            name="check_report_status"
        ),
    )

    def __repr__(self):
        return f"<Report(id={self.id}, type={self.report_type}, status={self.status})>"


class Notification(Base, CreatedAtMixin):
    """
    In-app notification tied to a report or a unit.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    unit_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("units.id", ondelete="SET NULL"),
        nullable=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    unit: Mapped[Optional["Unit"]] = relationship("Unit")

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "read_at"),
    )


class Profile(Base, TimestampMixin):
    """
    Dashboard user profile. Identity itself is owned by the auth provider.
    """
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    district_access: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Districts visible to the user; empty means all"
    )
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class StoredFile(Base, CreatedAtMixin):
    """
    Metadata for a file held in the blob store.
    """
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    bucket_id: Mapped[str] = mapped_column(String(64), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)


class AIAnalysis(Base, CreatedAtMixin):
    """
    Stored per-unit analysis text with its data-completeness confidence.
    """
    __tablename__ = "ai_analysis"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    analysis_type: Mapped[str] = mapped_column(String(50), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="llm",
        comment="'llm' or 'template'"
    )
    requested_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    unit: Mapped["Unit"] = relationship("Unit")

    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="check_analysis_confidence_range"
        ),
    )


class UserActivity(Base, CreatedAtMixin):
    """
    Audit trail entry for an action a user took, optionally on a unit.
    """
    __tablename__ = "user_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    unit_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("units.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    unit: Mapped[Optional["Unit"]] = relationship("Unit")
