"""
Trend Prediction

District or state-wide forward-looking analysis. Tier distribution, mean
score and arrears come from the report aggregator; recent consumption and
alert patterns are added to the prompt. Confidence reflects sample size,
alert coverage and consumption history depth, capped at 0.95.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from config.settings import settings
from src.gridrisk.db.models import Unit
from src.gridrisk.exceptions import DataFetchError, InvalidFilterError, NotFoundError, TextGenerationError
from src.gridrisk.llm.client import TextGenerationClient
from src.gridrisk.models.risk import ReportType, RiskTier
from src.gridrisk.reports.aggregator import Aggregator, RiskSummary
from src.gridrisk.reports.narrative import SOURCE_LLM, SOURCE_TEMPLATE, classify_risk_level
from src.gridrisk.utils.logger import get_logger, log_context

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an AI expert in electricity distribution analytics and risk management. "
    "Provide data-driven insights and actionable recommendations."
)

TIMEFRAMES = ("1_month", "3_months", "6_months", "12_months")
RECENT_READINGS = 6
RECENT_ALERT_LIMIT = 20
PROMPT_CONSUMPTION_ROWS = 10
DATA_RECENCY = 0.8


class TrendScope(str, Enum):
    DISTRICT = "district"
    STATE = "state"


@dataclass
class TrendData:
    total_units: int
    risk_distribution: Dict[str, int]
    avg_risk_score: float
    total_arrears: float
    consumption_trends: List[Dict[str, Any]] = field(default_factory=list)
    recent_alerts: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_units": self.total_units,
            "risk_distribution": self.risk_distribution,
            "avg_risk_score": self.avg_risk_score,
            "total_arrears": self.total_arrears,
            "consumption_trends": self.consumption_trends,
            "recent_alerts": self.recent_alerts,
        }


@dataclass
class TrendPrediction:
    prediction: str
    confidence_score: float
    source: str
    scope: str
    district: Optional[str]
    timeframe: str
    data_quality: Dict[str, float]
    trend_summary: Dict[str, Any]
    timestamp: datetime


def trend_data_for(units: List[Unit], summary: RiskSummary) -> TrendData:
    consumption = [
        {
            "district": unit.district,
            "consumption": list(unit.kwh_consumption or [])[-RECENT_READINGS:],
            "risk_score": unit.risk_score,
        }
        for unit in units
    ]
    alerts = [
        {"district": unit.district, "date": alert.alert_date.isoformat(), "severity": alert.severity}
        for unit in units
        for alert in unit.alert_history
    ]
    alerts.sort(key=lambda a: a["date"])
    return TrendData(
        total_units=summary.total_units,
        risk_distribution=dict(summary.tier_counts),
        avg_risk_score=summary.avg_risk_score,
        total_arrears=summary.total_arrears,
        consumption_trends=consumption,
        recent_alerts=alerts[-RECENT_ALERT_LIMIT:],
    )


def data_quality(data: TrendData) -> Dict[str, float]:
    """Per-factor quality scores in [0, 1]."""
    with_history = sum(1 for t in data.consumption_trends if len(t["consumption"]) > 3)
    return {
        "sample_size": min(data.total_units / 50, 1.0),
        "data_recency": DATA_RECENCY,
        "alert_coverage": min(len(data.recent_alerts) / 10, 1.0),
        "consumption_data": with_history / data.total_units if data.total_units else 0.0,
    }


def confidence_from(quality: Dict[str, float]) -> float:
    return round(min(sum(quality.values()) / len(quality), 0.95), 4)


def build_prompt(data: TrendData, scope: TrendScope, district: Optional[str], timeframe: str) -> str:
    dist = data.risk_distribution
    area = f"District: {district}" if scope is TrendScope.DISTRICT and district else "State-wide"
    alerts = "\n".join(
        f"{a['date']}: {a['severity']} alert in {a['district']}" for a in data.recent_alerts
    ) or "No recent alerts"
    consumption = "\n".join(
        f"{t['district']}: recent consumption [{', '.join(f'{kwh:g}' for kwh in t['consumption'])}] kWh, "
        f"risk {t['risk_score']}"
        for t in data.consumption_trends[:PROMPT_CONSUMPTION_ROWS]
    )
    return (
        "Analyze electricity consumer risk trends and provide predictions.\n\n"
        "CURRENT STATE:\n"
        f"- Total units: {data.total_units}\n"
        f"- Risk distribution: {dist[RiskTier.RED.value]} RED, {dist[RiskTier.AMBER.value]} AMBER, "
        f"{dist[RiskTier.GREEN.value]} GREEN\n"
        f"- Average risk score: {data.avg_risk_score:.2f}/100\n"
        f"- Total outstanding arrears: {data.total_arrears:,.2f}\n"
        f"- Scope: {area}\n"
        f"- Timeframe: {timeframe}\n\n"
        f"RECENT ALERT PATTERNS:\n{alerts}\n\n"
        f"CONSUMPTION PATTERNS:\n{consumption}\n\n"
        f"Provide a trend analysis, predictions for {timeframe} (risk distribution changes, likely "
        "high-risk areas, revenue impact), early warning indicators with thresholds, strategic "
        "recommendations and operational priorities for field and collection teams. "
        "Use clear sections."
    )


def template_prediction(data: TrendData, summary: RiskSummary, area: str, timeframe: str) -> str:
    level = classify_risk_level(summary)
    dist = data.risk_distribution
    lines = [
        f"{area}: {data.total_units} units analyzed for the next {timeframe.replace('_', ' ')}.",
        f"Current distribution {dist[RiskTier.RED.value]} RED, {dist[RiskTier.AMBER.value]} AMBER, "
        f"{dist[RiskTier.GREEN.value]} GREEN with mean score {data.avg_risk_score:.1f} "
        f"(overall level {level.value}).",
        f"Outstanding arrears {data.total_arrears:,.2f}.",
    ]
    amber = dist[RiskTier.AMBER.value]
    if amber:
        lines.append(f"Watch the {amber} AMBER units for escalation to RED.")
    if data.recent_alerts:
        by_district: Dict[str, int] = {}
        for alert in data.recent_alerts:
            by_district[alert["district"]] = by_district.get(alert["district"], 0) + 1
        busiest = max(by_district, key=by_district.get)
        lines.append(f"Recent alerts concentrate in {busiest} ({by_district[busiest]} of {len(data.recent_alerts)}).")
    return "\n".join(lines)


class TrendPredictionService:
    """
    Predicts risk trends for a district or the whole state.

    Args:
        session: Database session
        client: Text generation client; None uses templates only
        aggregator: Aggregator for the current-state figures
    """

    def __init__(
        self,
        session: Session,
        client: Optional[TextGenerationClient] = None,
        aggregator: Optional[Aggregator] = None,
    ):
        self.session = session
        self.client = client
        self.aggregator = aggregator or Aggregator()

    def predict(
        self,
        scope: TrendScope = TrendScope.DISTRICT,
        district: Optional[str] = None,
        timeframe: str = "3_months",
    ) -> TrendPrediction:
        """
        Build a trend prediction.

        A district scope without a district name covers all units, as does
        the state scope.

        Raises:
            InvalidFilterError: Unknown timeframe
            NotFoundError: No units in scope
            DataFetchError: Units could not be read
        """
        scope = TrendScope(scope)
        if timeframe not in TIMEFRAMES:
            raise InvalidFilterError(f"Unknown timeframe {timeframe!r}; expected one of {', '.join(TIMEFRAMES)}")

        with log_context(trend_scope=scope.value, district=district, timeframe=timeframe):
            units = self._fetch_units(scope, district)
            if not units:
                raise NotFoundError("No units found for trend analysis")

            summary = self.aggregator.aggregate(units, ReportType.CUSTOM)
            data = trend_data_for(units, summary)
            quality = data_quality(data)
            confidence = confidence_from(quality)
            area = f"District {district}" if scope is TrendScope.DISTRICT and district else "State-wide"

            prediction, source = None, SOURCE_TEMPLATE
            if self.client is not None and self.client.is_configured:
                try:
                    prediction = self.client.generate(
                        SYSTEM_PROMPT,
                        build_prompt(data, scope, district, timeframe),
                        max_tokens=settings.trend_max_tokens,
                        temperature=settings.trend_temperature,
                    )
                    source = SOURCE_LLM
                except TextGenerationError as e:
                    logger.warning("trend_prediction_fallback", error=str(e), error_type=type(e).__name__)
            if prediction is None:
                prediction = template_prediction(data, summary, area, timeframe)

            logger.info(
                "trend_prediction_complete",
                units_analyzed=data.total_units,
                confidence_score=confidence,
                source=source,
            )
            return TrendPrediction(
                prediction=prediction,
                confidence_score=confidence,
                source=source,
                scope=scope.value,
                district=district,
                timeframe=timeframe,
                data_quality=quality,
                trend_summary=data.to_dict(),
                timestamp=datetime.now(timezone.utc),
            )

    def _fetch_units(self, scope: TrendScope, district: Optional[str]) -> List[Unit]:
        query = select(Unit).options(selectinload(Unit.alert_history))
        if scope is TrendScope.DISTRICT and district:
            query = query.where(Unit.district == district)
        query = query.order_by(Unit.id).limit(settings.trend_unit_limit)
        try:
            return list(self.session.execute(query).scalars().all())
        except SQLAlchemyError as e:
            raise DataFetchError(f"Failed to fetch units for trend analysis: {e}") from e
