"""
Unit Analysis

On-demand analysis of a single unit's risk profile. The prompt is built from
the unit's scores, recent consumption, risk drivers and last alerts; the
response comes from the text-generation endpoint or, when that fails, from a
deterministic template. Every analysis is persisted to ai_analysis.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk.db.models import AIAnalysis, Unit
from src.gridrisk.db.repository import AIAnalysisRepository, UnitRepository
from src.gridrisk.exceptions import DataFetchError, NotFoundError, TextGenerationError
from src.gridrisk.llm.client import TextGenerationClient
from src.gridrisk.reports.narrative import SOURCE_LLM, SOURCE_TEMPLATE
from src.gridrisk.utils.logger import get_logger, log_context

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are an AI expert in electricity consumer risk analysis for a power distribution utility."

RECENT_ALERTS = 5
RECENT_READINGS = 6


class AnalysisType(str, Enum):
    RISK_ASSESSMENT = "risk_assessment"
    RECOMMENDATIONS = "recommendations"
    TREND_ANALYSIS = "trend_analysis"


@dataclass
class UnitAnalysisResult:
    analysis_id: int
    unit_id: int
    analysis_type: str
    analysis: str
    confidence_score: float
    source: str
    unit_context: Dict[str, Any]
    timestamp: datetime


@dataclass
class UnitContext:
    """Snapshot of the unit fields that feed the prompt."""
    urn: str
    name: str
    district: str
    risk_score: float
    tier: str
    recent_consumption: List[float]
    arrears: Optional[float]
    disconnect_flag: bool
    drivers: List[Dict[str, Any]] = field(default_factory=list)
    recent_alerts: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_unit(cls, unit: Unit) -> "UnitContext":
        alerts = sorted(unit.alert_history, key=lambda a: a.alert_date)[-RECENT_ALERTS:]
        return cls(
            urn=unit.urn,
            name=unit.name,
            district=unit.district,
            risk_score=unit.risk_score,
            tier=unit.tier,
            recent_consumption=list(unit.kwh_consumption or [])[-RECENT_READINGS:],
            arrears=unit.arrears,
            disconnect_flag=unit.disconnect_flag,
            drivers=[
                {"feature": d.feature, "value": d.value, "impact": d.impact}
                for d in sorted(unit.shap_drivers, key=lambda d: d.position)
            ],
            recent_alerts=[
                {"date": a.alert_date.isoformat(), "type": a.type, "severity": a.severity}
                for a in alerts
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "urn": self.urn,
            "name": self.name,
            "district": self.district,
            "risk_score": self.risk_score,
            "tier": self.tier,
            "recent_consumption": self.recent_consumption,
            "arrears": self.arrears,
            "disconnect_flag": self.disconnect_flag,
            "drivers": self.drivers,
            "recent_alerts": self.recent_alerts,
        }


def confidence_for(unit: Unit) -> float:
    """
    Confidence from data completeness.

    Four checks (consumption readings, known arrears, risk drivers, alert
    history) give completeness c in [0, 1]; confidence is min(0.95, 0.8c + 0.2).
    """
    checks = [
        bool(unit.kwh_consumption),
        unit.arrears is not None,
        bool(unit.shap_drivers),
        bool(unit.alert_history),
    ]
    completeness = sum(checks) / len(checks)
    return round(min(0.95, completeness * 0.8 + 0.2), 4)


def build_prompt(context: UnitContext, analysis_type: AnalysisType) -> str:
    if analysis_type is AnalysisType.RISK_ASSESSMENT:
        consumption = ", ".join(f"{kwh:g}" for kwh in context.recent_consumption) or "no readings"
        alerts = ", ".join(
            f"{a['date']}: {a['type']} ({a['severity']})" for a in context.recent_alerts
        ) or "none"
        drivers = "\n".join(
            f"- {d['feature']}: {d['value']} (impact {d['impact']})" for d in context.drivers
        ) or "- none recorded"
        arrears = "unknown" if context.arrears is None else f"{context.arrears:,.2f}"
        return (
            "Analyze this electricity consumer's risk profile:\n\n"
            f"Consumer: {context.name} ({context.urn})\n"
            f"District: {context.district}\n"
            f"Current risk score: {context.risk_score}/100\n"
            f"Risk tier: {context.tier}\n"
            f"Recent consumption: {consumption} kWh\n"
            f"Outstanding arrears: {arrears}\n"
            f"Disconnection flag: {'Yes' if context.disconnect_flag else 'No'}\n"
            f"Recent alerts: {alerts}\n\n"
            f"Key risk factors:\n{drivers}\n\n"
            "Provide a risk assessment covering the current risk level, key contributing factors, "
            "recommended actions, the likely risk trend and the priority for field intervention."
        )

    payload = json.dumps(context.to_dict(), indent=2)
    if analysis_type is AnalysisType.RECOMMENDATIONS:
        return (
            "Based on this consumer's profile, provide specific operational recommendations:\n\n"
            f"{payload}\n\n"
            "Focus on immediate actions, arrears collection strategy, consumption patterns, "
            "preventive measures and resource allocation priorities."
        )
    return (
        "Analyze consumption and risk trends for this consumer:\n\n"
        f"{payload}\n\n"
        "Cover consumption patterns, risk score progression, seasonal factors, peer comparison "
        "and the probability of future risk."
    )


def _consumption_direction(readings: List[float]) -> Optional[str]:
    if len(readings) < 2:
        return None
    half = len(readings) // 2
    earlier = sum(readings[:half]) / half
    later = sum(readings[half:]) / (len(readings) - half)
    if earlier == 0:
        return None
    change = (later - earlier) / earlier
    if change > 0.1:
        return f"rising ({change * 100:.0f}% over the recent readings)"
    if change < -0.1:
        return f"falling ({abs(change) * 100:.0f}% over the recent readings)"
    return "stable"


def template_analysis(context: UnitContext, analysis_type: AnalysisType) -> str:
    """Deterministic analysis used when generation is unavailable."""
    lines = [
        f"{context.name} ({context.urn}) in {context.district} scores {context.risk_score:.1f}/100 "
        f"and sits in the {context.tier} tier."
    ]
    if context.arrears:
        lines.append(f"Outstanding arrears: {context.arrears:,.2f}.")
    if context.disconnect_flag:
        lines.append("The unit is flagged for disconnection.")

    if analysis_type is AnalysisType.RECOMMENDATIONS:
        actions = []
        if context.tier == "RED":
            actions.append("Schedule a field inspection this week")
        if context.arrears:
            actions.append("Open an arrears recovery plan with the consumer")
        if context.drivers:
            actions.append(f"Address the leading risk driver: {context.drivers[0]['feature']}")
        actions.append("Keep the unit under routine monitoring")
        lines.extend(f"{i}. {action}" for i, action in enumerate(actions, 1))
    elif analysis_type is AnalysisType.TREND_ANALYSIS:
        direction = _consumption_direction(context.recent_consumption)
        if direction:
            lines.append(f"Consumption is {direction}.")
        else:
            lines.append("Not enough consumption readings to establish a trend.")
        lines.append(f"{len(context.recent_alerts)} alerts in the recent history.")
    else:
        if context.drivers:
            top = ", ".join(d["feature"] for d in context.drivers[:3])
            lines.append(f"Main contributing factors: {top}.")
        if context.recent_alerts:
            latest = context.recent_alerts[-1]
            lines.append(f"Latest alert on {latest['date']}: {latest['type']} ({latest['severity']}).")
    return "\n".join(lines)


class UnitAnalysisService:
    """
    Runs and stores per-unit analyses.

    Args:
        session: Database session
        client: Text generation client; None uses templates only
    """

    def __init__(self, session: Session, client: Optional[TextGenerationClient] = None):
        self.session = session
        self.client = client
        self.units = UnitRepository()
        self.analyses = AIAnalysisRepository()

    def analyze(
        self,
        unit_id: int,
        analysis_type: AnalysisType = AnalysisType.RISK_ASSESSMENT,
        requested_by: Optional[str] = None,
    ) -> UnitAnalysisResult:
        """
        Analyze one unit and persist the result.

        Raises:
            NotFoundError: No unit with that id
            DataFetchError: The unit could not be read or the result stored
        """
        analysis_type = AnalysisType(analysis_type)
        with log_context(unit_id=unit_id, analysis_type=analysis_type.value):
            try:
                unit = self.units.get_with_details(self.session, unit_id)
            except SQLAlchemyError as e:
                raise DataFetchError(f"Failed to load unit {unit_id}: {e}") from e
            if unit is None:
                raise NotFoundError(f"Unit {unit_id} not found")

            context = UnitContext.from_unit(unit)
            prompt = build_prompt(context, analysis_type)
            text, source = self._generate(prompt, context, analysis_type)
            confidence = confidence_for(unit)

            try:
                row: AIAnalysis = self.analyses.create(
                    self.session,
                    unit_id=unit.id,
                    analysis_type=analysis_type.value,
                    prompt=prompt,
                    response=text,
                    confidence_score=confidence,
                    source=source,
                    requested_by=requested_by,
                )
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                raise DataFetchError(f"Failed to store analysis for unit {unit_id}: {e}") from e

            logger.info("unit_analysis_complete", source=source, confidence_score=confidence)
            return UnitAnalysisResult(
                analysis_id=row.id,
                unit_id=unit.id,
                analysis_type=analysis_type.value,
                analysis=text,
                confidence_score=confidence,
                source=source,
                unit_context=context.to_dict(),
                timestamp=row.created_at or datetime.now(timezone.utc),
            )

    def history(self, unit_id: int, limit: Optional[int] = None) -> List[AIAnalysis]:
        """Stored analyses for a unit, newest first."""
        if self.units.get_by_id(self.session, unit_id) is None:
            raise NotFoundError(f"Unit {unit_id} not found")
        return self.analyses.for_unit(self.session, unit_id, limit or settings.analysis_history_limit)

    def _generate(self, prompt: str, context: UnitContext, analysis_type: AnalysisType):
        if self.client is not None and self.client.is_configured:
            try:
                text = self.client.generate(
                    SYSTEM_PROMPT,
                    prompt,
                    max_tokens=settings.analysis_max_tokens,
                    temperature=settings.analysis_temperature,
                )
                return text, SOURCE_LLM
            except TextGenerationError as e:
                logger.warning("unit_analysis_fallback", error=str(e), error_type=type(e).__name__)
        return template_analysis(context, analysis_type), SOURCE_TEMPLATE
