"""
Risk Aggregation

Derives deterministic summary statistics from a set of unit rows: tier
counts, mean score, arrears totals, the top-N highest-risk units and
per-district rollups.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from config.settings import settings
from src.gridrisk.exceptions import AssemblyError
from src.gridrisk.models.risk import RiskTier, ReportType, TIER_ORDER, tier_for_score
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

UNIT_COLUMNS = ["urn", "name", "district", "risk_score", "tier", "arrears", "disconnect_flag"]


@dataclass
class TopRiskUnit:
    """Entry in the ranked list of highest-risk units."""
    urn: str
    name: str
    district: str
    risk_score: float
    tier: str
    arrears: float


@dataclass
class DistrictSummary:
    """
    Per-district rollup recomputed from the current unit set.

    Attributes:
        name: District name
        total_units: Units in the district
        red_count / amber_count / green_count: Units per tier
        avg_risk_score: Mean risk score
        sla_compliance: Externally supplied compliance percentage, if known
        total_arrears: Cumulative outstanding balance
        performance_score: District performance score (district reports only)
        recommendations: Rule-based actions (district reports only)
    """
    name: str
    total_units: int
    red_count: int
    amber_count: int
    green_count: int
    avg_risk_score: float
    sla_compliance: Optional[float]
    total_arrears: float
    performance_score: Optional[int] = None
    recommendations: List[str] = field(default_factory=list)


@dataclass
class RiskSummary:
    """
    Aggregated view of a unit set for one report.

    tier_counts always carries the three tier labels; their sum equals
    total_units.
    """
    report_type: str
    total_units: int
    tier_counts: Dict[str, int]
    avg_risk_score: float
    total_arrears: float
    disconnected_count: int
    top_risk_units: List[TopRiskUnit]
    district_summaries: List[DistrictSummary]
    risk_trends: Dict[str, int]
    tier_mismatches: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def high_fraction(self) -> float:
        if not self.total_units:
            return 0.0
        return self.tier_counts.get(RiskTier.RED.value, 0) / self.total_units

    @property
    def medium_fraction(self) -> float:
        if not self.total_units:
            return 0.0
        return self.tier_counts.get(RiskTier.AMBER.value, 0) / self.total_units

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _unit_record(unit: Any) -> Dict[str, Any]:
    """Normalize an ORM unit or a mapping into a flat record."""
    if isinstance(unit, Mapping):
        get = unit.get
    else:
        def get(key, default=None):
            return getattr(unit, key, default)

    tier = str(get("tier") or "").upper()
    if tier not in RiskTier.__members__:
        raise AssemblyError(f"Unit {get('urn')} has unknown tier {get('tier')!r}")

    score = get("risk_score")
    if score is None:
        raise AssemblyError(f"Unit {get('urn')} has no risk score")

    return {
        "urn": get("urn"),
        "name": get("name"),
        "district": get("district"),
        "risk_score": float(score),
        "tier": tier,
        "arrears": float(get("arrears") or 0.0),
        "disconnect_flag": bool(get("disconnect_flag") or False),
    }


def calculate_performance_score(avg_risk_score: float, sla_compliance: Optional[float], red_count: int) -> int:
    """
    District performance score (0-100).

    Weights: low risk 40%, SLA compliance 30%, few RED units 30%.
    Unknown compliance contributes nothing.
    """
    risk_weight = (100 - avg_risk_score) * 0.4
    compliance_weight = (sla_compliance or 0.0) * 0.3
    alert_weight = max(0, 100 - red_count * 10) * 0.3
    return round(risk_weight + compliance_weight + alert_weight)


def district_recommendations(summary: DistrictSummary) -> List[str]:
    recommendations = []
    if summary.avg_risk_score > 70:
        recommendations.append("Increase field team presence for high-risk unit management")
    if summary.red_count > 10:
        recommendations.append("Implement immediate intervention program for critical alerts")
    if summary.sla_compliance is not None and summary.sla_compliance < 90:
        recommendations.append("Review and improve service delivery processes")
    return recommendations


class Aggregator:
    """
    Computes RiskSummary objects from unit rows.

    The same input always yields the same summary: top-N ties are broken by
    fetch order and districts are listed in order of first appearance.
    """

    def __init__(self, top_n: Optional[int] = None):
        self.top_n = top_n if top_n is not None else settings.report_top_n

    def aggregate(
        self,
        units: Iterable[Any],
        report_type: ReportType,
        compliance: Optional[Dict[str, Optional[float]]] = None,
    ) -> RiskSummary:
        """
        Aggregate a unit set.

        Args:
            units: Unit rows (ORM objects or mappings), in fetch order
            report_type: Report type being generated
            compliance: SLA compliance by district name

        Returns:
            RiskSummary

        Raises:
            AssemblyError: A row is missing its score or carries an unknown tier
        """
        records = [_unit_record(unit) for unit in units]

        if not records:
            logger.info("aggregation_empty_input", report_type=report_type.value)
            return RiskSummary(
                report_type=report_type.value,
                total_units=0,
                tier_counts={tier.value: 0 for tier in TIER_ORDER},
                avg_risk_score=0.0,
                total_arrears=0.0,
                disconnected_count=0,
                top_risk_units=[],
                district_summaries=[],
                risk_trends={"improving": 0, "stable": 0, "deteriorating": 0},
            )

        df = pd.DataFrame.from_records(records, columns=UNIT_COLUMNS)
        df["fetch_order"] = range(len(df))

        summary = RiskSummary(
            report_type=report_type.value,
            total_units=len(df),
            tier_counts=self._tier_counts(df),
            avg_risk_score=round(float(df["risk_score"].mean()), 2),
            total_arrears=round(float(df["arrears"].sum()), 2),
            disconnected_count=int(df["disconnect_flag"].sum()),
            top_risk_units=self._top_units(df),
            district_summaries=[],
            risk_trends=self._risk_trends(df),
            tier_mismatches=self._tier_mismatches(df),
        )

        if report_type.is_district_scoped:
            summary.district_summaries = self._district_summaries(
                df,
                compliance or {},
                with_performance=report_type is ReportType.DISTRICT_PERFORMANCE,
            )

        logger.info(
            "aggregation_complete",
            report_type=report_type.value,
            total_units=summary.total_units,
            districts=len(summary.district_summaries),
        )
        return summary

    @staticmethod
    def _tier_counts(df: pd.DataFrame) -> Dict[str, int]:
        return {tier.value: int((df["tier"] == tier.value).sum()) for tier in TIER_ORDER}

    def _top_units(self, df: pd.DataFrame) -> List[TopRiskUnit]:
        ranked = df.sort_values(["risk_score", "fetch_order"], ascending=[False, True]).head(self.top_n)
        return [
            TopRiskUnit(
                urn=row.urn,
                name=row.name,
                district=row.district,
                risk_score=float(row.risk_score),
                tier=row.tier,
                arrears=float(row.arrears),
            )
            for row in ranked.itertuples(index=False)
        ]

    @staticmethod
    def _risk_trends(df: pd.DataFrame) -> Dict[str, int]:
        # Score bands, not a time series
        scores = df["risk_score"]
        return {
            "improving": int((scores < 50).sum()),
            "stable": int(((scores >= 50) & (scores < 80)).sum()),
            "deteriorating": int((scores >= 80).sum()),
        }

    @staticmethod
    def _tier_mismatches(df: pd.DataFrame) -> int:
        expected = df["risk_score"].map(lambda score: tier_for_score(score).value)
        mismatches = int((expected != df["tier"]).sum())
        if mismatches:
            logger.warning("stored_tier_mismatch", count=mismatches)
        return mismatches

    def _district_summaries(
        self,
        df: pd.DataFrame,
        compliance: Dict[str, Optional[float]],
        with_performance: bool,
    ) -> List[DistrictSummary]:
        summaries = []
        for name, group in df.groupby("district", sort=False):
            counts = self._tier_counts(group)
            summary = DistrictSummary(
                name=name,
                total_units=len(group),
                red_count=counts[RiskTier.RED.value],
                amber_count=counts[RiskTier.AMBER.value],
                green_count=counts[RiskTier.GREEN.value],
                avg_risk_score=round(float(group["risk_score"].mean()), 2),
                sla_compliance=compliance.get(name),
                total_arrears=round(float(group["arrears"].sum()), 2),
            )
            if with_performance:
                summary.performance_score = calculate_performance_score(
                    summary.avg_risk_score, summary.sla_compliance, summary.red_count
                )
                summary.recommendations = district_recommendations(summary)
            summaries.append(summary)
        return summaries
