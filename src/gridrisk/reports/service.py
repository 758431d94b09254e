"""
Report Service

Runs the report pipeline for one request: select data for the report
type, aggregate, enrich, assemble, then finalize and notify. Generation is
synchronous; the returned report is already ready or failed.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk.db.models import AlertHistory, Report, Unit
from src.gridrisk.db.repository import (
    AlertHistoryRepository,
    DistrictStatRepository,
    ProfileRepository,
    ReportRepository,
    UnitRepository,
)
from src.gridrisk.exceptions import (
    DataFetchError,
    GridRiskError,
    InvalidReportStateError,
    PermissionDeniedError,
    ReportNotFoundError,
    StorageError,
)
from src.gridrisk.llm.client import TextGenerationClient
from src.gridrisk.models.risk import ReportStatus, ReportType
from src.gridrisk.notifications.dispatch import EmailSender
from src.gridrisk.reports.aggregator import Aggregator, RiskSummary
from src.gridrisk.reports.assembler import ReportAssembler, ReportMetadata
from src.gridrisk.reports.narrative import NarrativeEnricher
from src.gridrisk.reports.store import ReportNotifier, ReportStore
from src.gridrisk.search.filters import ReportFilters, build_predicates
from src.gridrisk.storage.blob import LocalBlobStore
from src.gridrisk.utils.logger import get_logger, log_context

logger = get_logger(__name__)

REPORT_TITLES = {
    ReportType.DAILY_SUMMARY: "Daily Risk Summary",
    ReportType.WEEKLY_ANALYSIS: "Weekly Risk Analysis",
    ReportType.DISTRICT_PERFORMANCE: "District Performance Report",
    ReportType.RISK_ASSESSMENT: "High Risk Assessment",
    ReportType.CUSTOM: "Custom Report",
}

REPORT_DESCRIPTIONS = {
    ReportType.DAILY_SUMMARY: "Daily overview of risk metrics and alerts",
    ReportType.WEEKLY_ANALYSIS: "Weekly trend analysis with AI insights",
    ReportType.DISTRICT_PERFORMANCE: "Comprehensive district performance analysis",
    ReportType.RISK_ASSESSMENT: "Detailed assessment of high-risk units",
    ReportType.CUSTOM: "Custom analysis based on specified filters",
}

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
}

SCHEDULED_REPORT_ROLES = ("admin", "manager")


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _alert_counts(alerts: List[AlertHistory]) -> Dict[str, Any]:
    by_severity: Dict[str, int] = {}
    for alert in alerts:
        by_severity[alert.severity] = by_severity.get(alert.severity, 0) + 1
    return {"total": len(alerts), "by_severity": by_severity}


def _high_risk_unit_detail(unit: Unit) -> Dict[str, Any]:
    return {
        "urn": unit.urn,
        "name": unit.name,
        "district": unit.district,
        "risk_score": unit.risk_score,
        "arrears": unit.arrears or 0.0,
        "risk_factors": [
            {"feature": d.feature, "impact": d.impact, "value": d.value}
            for d in unit.shap_drivers
        ],
        "recent_alerts": [
            {
                "date": a.alert_date.isoformat(),
                "type": a.type,
                "severity": a.severity,
                "message": a.message,
            }
            for a in unit.alert_history[-3:]
        ],
    }


class ReportService:
    """
    Report generation, retrieval and export for one database session.

    Args:
        session: Database session
        text_client: Text generation client (None uses templates only)
        email_sender: Email sender for report-ready emails
        blob_store: Blob store for exports
    """

    def __init__(
        self,
        session: Session,
        text_client: Optional[TextGenerationClient] = None,
        email_sender: Optional[EmailSender] = None,
        blob_store: Optional[LocalBlobStore] = None,
        aggregator: Optional[Aggregator] = None,
        enricher: Optional[NarrativeEnricher] = None,
        assembler: Optional[ReportAssembler] = None,
    ):
        self.session = session
        self.blob_store = blob_store
        self.aggregator = aggregator or Aggregator()
        self.enricher = enricher or NarrativeEnricher(client=text_client)
        self.assembler = assembler or ReportAssembler()
        self.store = ReportStore()
        self.notifier = ReportNotifier(email_sender=email_sender)

        self.units = UnitRepository()
        self.alerts = AlertHistoryRepository()
        self.districts = DistrictStatRepository()
        self.reports = ReportRepository()
        self.profiles = ProfileRepository()

    def generate_report(
        self,
        report_type: ReportType,
        user_id: Optional[str],
        filters: Optional[Dict[str, Any]] = None,
    ) -> Report:
        """
        Generate a report synchronously.

        Filters are validated before any record is written. Once the report
        row exists, a data or assembly failure finalizes it as failed and the
        error is re-raised.

        Args:
            report_type: Report type
            user_id: Requesting user
            filters: Request filter payload (see ReportFilters)

        Returns:
            The finalized report

        Raises:
            InvalidFilterError: Filters rejected; no report is created
            DataFetchError: Base data could not be fetched
            AssemblyError: Summary could not be encoded
        """
        report_filters = ReportFilters.parse(filters)
        stored_filters = report_filters.model_dump(mode="json")

        report = self.store.create(
            self.session,
            report_type,
            REPORT_TITLES[report_type],
            REPORT_DESCRIPTIONS[report_type],
            user_id,
            stored_filters,
        )
        self.session.commit()
        report_id = report.id

        with log_context(report_id=report_id, report_type=report_type.value):
            try:
                summary = self._summarize(report_type, report_filters)
                narrative = self.enricher.enrich(summary, report_type)
                metadata = ReportMetadata(
                    report_id=report_id,
                    report_type=report_type.value,
                    title=report.title,
                    description=report.description,
                    generated_by=user_id,
                    generated_at=datetime.now(timezone.utc),
                    filters=stored_filters,
                )
                document = self.assembler.build_document(metadata, summary, narrative)
            except Exception as e:
                self._fail(report_id, e)
                raise

            generated_at = self.store.mark_ready(self.session, report_id, document)
            self.session.commit()
            logger.info(
                "report_generated",
                total_units=summary.total_units,
                risk_level=narrative.risk_level.value,
                degraded=narrative.degraded,
            )

            # Readiness is already committed; a notification failure stays local
            try:
                self.notifier.report_ready(
                    self.session, report_id, report_type, report.title, user_id, generated_at
                )
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error("report_notification_failed", error=str(e), error_type=type(e).__name__)

        self.session.refresh(report)
        return report

    def _fail(self, report_id: str, error: Exception):
        self.session.rollback()
        message = str(error) or type(error).__name__
        try:
            self.store.mark_failed(self.session, report_id, message)
            self.session.commit()
        except (SQLAlchemyError, InvalidReportStateError) as e:
            self.session.rollback()
            logger.error("report_fail_write_failed", report_id=report_id, error=str(e))
        logger.error(
            "report_generation_failed",
            report_id=report_id,
            error=message,
            error_type=type(error).__name__,
        )

    def _summarize(self, report_type: ReportType, filters: ReportFilters) -> RiskSummary:
        predicates = build_predicates(filters.to_specs())
        now = datetime.now(timezone.utc)
        extras: Dict[str, Any] = {}
        compliance = None

        try:
            if report_type is ReportType.DAILY_SUMMARY:
                since = _start_of_day(now)
                units = self.units.updated_since(self.session, since, predicates)
                extras["alerts"] = _alert_counts(self.alerts.created_since(self.session, since))
                extras["period"] = {"from": since.isoformat(), "to": now.isoformat()}
                compliance = self.districts.compliance_by_district(self.session)

            elif report_type is ReportType.WEEKLY_ANALYSIS:
                since = now - timedelta(days=settings.weekly_window_days)
                units = self.units.fetch(self.session, predicates)
                extras["alerts"] = _alert_counts(self.alerts.created_since(self.session, since))
                extras["period"] = {"from": since.isoformat(), "to": now.isoformat()}
                compliance = self.districts.compliance_by_district(self.session)

            elif report_type is ReportType.DISTRICT_PERFORMANCE:
                units = self.units.fetch(self.session, predicates)
                compliance = self.districts.compliance_by_district(self.session)

            elif report_type is ReportType.RISK_ASSESSMENT:
                units = self.units.high_risk(self.session, settings.risk_assessment_limit, predicates)
                extras["high_risk_units"] = [_high_risk_unit_detail(unit) for unit in units]
                extras["risk_summary"] = {
                    "critical_count": sum(1 for u in units if u.risk_score > 90),
                    "high_count": sum(1 for u in units if u.risk_score > 80),
                }

            else:
                units = self.units.fetch(self.session, predicates)

        except SQLAlchemyError as e:
            raise DataFetchError(f"Failed to fetch report data: {e}") from e

        summary = self.aggregator.aggregate(units, report_type, compliance)
        summary.extras.update(extras)
        return summary

    def get_report(self, report_id: str, user_id: str) -> Report:
        """
        Raises:
            ReportNotFoundError: No such report for this user
        """
        report = self.reports.get_for_user(self.session, report_id, user_id)
        if report is None:
            raise ReportNotFoundError(f"Report {report_id} not found")
        return report

    def list_reports(self, user_id: str, limit: Optional[int] = None) -> List[Report]:
        return self.reports.list_for_user(self.session, user_id, limit or settings.report_list_limit)

    def export_report(self, report_id: str, user_id: str, fmt: str = "json") -> Tuple[str, str, str]:
        """
        Encode a ready report for download.

        The encoded body is also written to the blob store and its path is
        recorded as the report's file_url.

        Args:
            report_id: Report id
            user_id: Requesting user
            fmt: 'json' or 'csv'

        Returns:
            (filename, media type, body)

        Raises:
            ReportNotFoundError: No such report for this user
            InvalidReportStateError: Report is not ready
            ValueError: Unknown format
        """
        if fmt not in EXPORT_MEDIA_TYPES:
            raise ValueError(f"Unsupported export format: {fmt}")

        report = self.get_report(report_id, user_id)
        if report.status != ReportStatus.READY.value:
            raise InvalidReportStateError(f"Report {report_id} is {report.status}, not ready")

        body = self.assembler.to_csv(report.data) if fmt == "csv" else self.assembler.to_json(report.data)
        filename = f"{re.sub(r'[^A-Za-z0-9]', '_', report.title)}_{report.id[:8]}.{fmt}"

        if self.blob_store is not None:
            try:
                path = self.blob_store.put(
                    settings.report_export_bucket,
                    f"{user_id}/{report.id}.{fmt}",
                    body.encode("utf-8"),
                    overwrite=True,
                )
            except StorageError as e:
                logger.warning("report_export_store_failed", report_id=report_id, error=str(e))
            else:
                self.reports.update(self.session, report.id, file_url=path)
                self.session.commit()

        logger.info("report_exported", report_id=report_id, format=fmt, size=len(body))
        return filename, EXPORT_MEDIA_TYPES[fmt], body

    def schedule_daily_reports(self, requested_by: Optional[str] = None) -> Dict[str, int]:
        """
        Generate a daily summary for every admin and manager profile.

        Args:
            requested_by: Calling user; must hold an admin or manager role.
                None for scheduler runs.

        Returns:
            Counts of generated and failed reports

        Raises:
            PermissionDeniedError: Caller is not an admin or manager
        """
        if requested_by is not None:
            caller = self.profiles.get_by_id(self.session, requested_by)
            if caller is None or caller.role not in SCHEDULED_REPORT_ROLES:
                raise PermissionDeniedError(f"User {requested_by} may not schedule reports")

        profiles = self.profiles.with_roles(self.session, SCHEDULED_REPORT_ROLES)
        generated = 0
        failed = 0

        for profile in profiles:
            try:
                self.generate_report(ReportType.DAILY_SUMMARY, profile.id, {})
                generated += 1
            except GridRiskError as e:
                failed += 1
                logger.error("scheduled_report_failed", user_id=profile.id, error=str(e))

        logger.info("scheduled_reports_complete", generated=generated, failed=failed, profiles=len(profiles))
        return {"generated": generated, "failed": failed, "profiles": len(profiles)}
