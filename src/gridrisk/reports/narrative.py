"""
Narrative Enrichment

Turns an aggregated RiskSummary into four prose fields: executive summary,
recommendations, risk assessment and technical analysis. Each field is
requested from the text-generation endpoint independently and falls back to
a deterministic template on any failure. The overall risk level is always
computed from tier fractions, never from generated text.
"""
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from config.settings import settings
from src.gridrisk.exceptions import TextGenerationError
from src.gridrisk.llm.client import TextGenerationClient
from src.gridrisk.models.risk import RiskTier, ReportType
from src.gridrisk.reports.aggregator import RiskSummary
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an AI expert in electricity distribution analytics and consumer risk "
    "management. Provide concise, data-driven, actionable insights for the "
    "operations team."
)

SOURCE_LLM = "llm"
SOURCE_TEMPLATE = "template"

NARRATIVE_FIELDS = ("executive_summary", "recommendations", "risk_assessment", "technical_analysis")


class RiskLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"


def classify_risk_level(summary: RiskSummary) -> RiskLevel:
    """
    Overall risk level from the share of RED and AMBER units.

    CRITICAL: RED > 15%
    HIGH:     RED > 10% or AMBER > 30%
    MODERATE: RED > 5%  or AMBER > 20%
    LOW:      otherwise (including an empty unit set)
    """
    high = summary.high_fraction
    medium = summary.medium_fraction

    if high > 0.15:
        return RiskLevel.CRITICAL
    if high > 0.10 or medium > 0.30:
        return RiskLevel.HIGH
    if high > 0.05 or medium > 0.20:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


@dataclass
class NarrativeResult:
    """
    Enrichment output. sources maps each prose field to 'llm' or 'template'.
    """
    executive_summary: str
    recommendations: List[str]
    risk_level: RiskLevel
    risk_assessment: str
    technical_analysis: str
    sources: Dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return any(source == SOURCE_TEMPLATE for source in self.sources.values())


def _pct(fraction: float) -> str:
    return f"{fraction * 100:.1f}%"


def _top_red_district(summary: RiskSummary) -> Optional[str]:
    candidates = [d for d in summary.district_summaries if d.red_count > 0]
    if not candidates:
        return None
    return max(candidates, key=lambda d: d.red_count).name


def _summary_context(summary: RiskSummary, report_type: ReportType, risk_level: RiskLevel) -> str:
    counts = summary.tier_counts
    lines = [
        f"Report type: {report_type.value.replace('_', ' ')}",
        f"Total units: {summary.total_units}",
        f"Risk distribution: {counts[RiskTier.RED.value]} RED, "
        f"{counts[RiskTier.AMBER.value]} AMBER, {counts[RiskTier.GREEN.value]} GREEN",
        f"Average risk score: {summary.avg_risk_score:.2f}/100",
        f"Total outstanding arrears: {summary.total_arrears:,.2f}",
        f"Disconnection-flagged units: {summary.disconnected_count}",
        f"Computed overall risk level: {risk_level.value}",
    ]
    if summary.top_risk_units:
        lines.append("Highest-risk units:")
        lines.extend(
            f"- {u.name} ({u.urn}), {u.district}: score {u.risk_score:.1f}, arrears {u.arrears:,.2f}"
            for u in summary.top_risk_units[:5]
        )
    if summary.district_summaries:
        lines.append("Districts:")
        lines.extend(
            f"- {d.name}: {d.total_units} units, {d.red_count} RED, avg score {d.avg_risk_score:.1f}"
            for d in summary.district_summaries
        )
    return "\n".join(lines)


PROMPTS = {
    "executive_summary": "Write a three to four sentence executive summary of this risk data.",
    "recommendations": (
        "List three to five prioritized, actionable recommendations for the operations team, "
        "one per line, most urgent first."
    ),
    "risk_assessment": (
        "Write a short risk assessment explaining why the overall risk level is the computed "
        "level given above. Do not propose a different level."
    ),
    "technical_analysis": (
        "Write a brief technical analysis of the score distribution, district variation "
        "and arrears exposure."
    ),
}


# Deterministic templates

def template_executive_summary(summary: RiskSummary, report_type: ReportType, risk_level: RiskLevel) -> str:
    title = report_type.value.replace("_", " ").capitalize()
    if not summary.total_units:
        return f"{title}: no units matched the report filters. Overall risk level: {risk_level.value}."

    counts = summary.tier_counts
    return (
        f"{title}: {summary.total_units} units monitored. "
        f"{counts[RiskTier.RED.value]} RED ({_pct(summary.high_fraction)}), "
        f"{counts[RiskTier.AMBER.value]} AMBER ({_pct(summary.medium_fraction)}) and "
        f"{counts[RiskTier.GREEN.value]} GREEN. "
        f"Average risk score {summary.avg_risk_score:.1f}/100 with total outstanding arrears of "
        f"{summary.total_arrears:,.2f}. Overall risk level: {risk_level.value}."
    )


def template_recommendations(summary: RiskSummary, report_type: ReportType, risk_level: RiskLevel) -> List[str]:
    recommendations = []
    red = summary.tier_counts[RiskTier.RED.value]

    if risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH):
        recommendations.append(
            f"Prioritize field inspections for the {red} RED tier units, starting with the highest scores"
        )
    if summary.top_risk_units:
        top = summary.top_risk_units[0]
        recommendations.append(f"Review collection strategy for {top.name} ({top.urn}), score {top.risk_score:.1f}")
    district = _top_red_district(summary)
    if district:
        recommendations.append(f"Focus intervention resources on {district}, which has the most RED units")
    if summary.disconnected_count:
        recommendations.append(
            f"Verify disconnection status and arrears recovery for {summary.disconnected_count} flagged units"
        )
    if summary.tier_mismatches:
        recommendations.append(
            f"Audit {summary.tier_mismatches} units whose stored tier disagrees with their risk score"
        )
    recommendations.append("Continue routine monitoring of AMBER tier units for escalation")
    return recommendations


def template_risk_assessment(summary: RiskSummary, report_type: ReportType, risk_level: RiskLevel) -> str:
    return (
        f"Overall risk level is {risk_level.value}: {_pct(summary.high_fraction)} of units are in the RED "
        f"tier and {_pct(summary.medium_fraction)} in the AMBER tier. Levels are assigned as CRITICAL above "
        f"15% RED, HIGH above 10% RED or 30% AMBER, MODERATE above 5% RED or 20% AMBER, otherwise LOW."
    )


def template_technical_analysis(summary: RiskSummary, report_type: ReportType, risk_level: RiskLevel) -> str:
    trends = summary.risk_trends
    parts = [
        f"Score bands: {trends['improving']} units below 50, {trends['stable']} between 50 and 80, "
        f"{trends['deteriorating']} at or above 80.",
        f"Mean score {summary.avg_risk_score:.2f} across {summary.total_units} units; "
        f"arrears exposure {summary.total_arrears:,.2f}.",
    ]
    if summary.district_summaries:
        worst = max(summary.district_summaries, key=lambda d: d.avg_risk_score)
        parts.append(
            f"{len(summary.district_summaries)} districts covered; highest mean score in {worst.name} "
            f"({worst.avg_risk_score:.1f})."
        )
    if summary.tier_mismatches:
        parts.append(f"{summary.tier_mismatches} stored tiers disagree with the score thresholds.")
    return " ".join(parts)


TEMPLATES: Dict[str, Callable] = {
    "executive_summary": template_executive_summary,
    "recommendations": template_recommendations,
    "risk_assessment": template_risk_assessment,
    "technical_analysis": template_technical_analysis,
}

_LIST_PREFIX = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def parse_recommendations(text: str) -> List[str]:
    """Split generated text into list items, dropping bullets and numbering."""
    items = []
    for line in text.splitlines():
        item = _LIST_PREFIX.sub("", line).strip()
        if item:
            items.append(item)
    return items


class NarrativeEnricher:
    """
    Produces NarrativeResult objects for aggregated summaries.

    Args:
        client: Text generation client; None disables generation entirely
        max_workers: Concurrent generation calls
        max_tokens: Output bound per call
        temperature: Sampling temperature
    """

    def __init__(
        self,
        client: Optional[TextGenerationClient] = None,
        max_workers: Optional[int] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.max_workers = max_workers or settings.llm_max_workers
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = settings.llm_temperature if temperature is None else temperature

    def enrich(self, summary: RiskSummary, report_type: ReportType) -> NarrativeResult:
        """
        Build all narrative fields for a summary.

        Returns only after every field has either been generated or replaced
        by its template.
        """
        risk_level = classify_risk_level(summary)
        values: Dict[str, object] = {}
        sources: Dict[str, str] = {}

        if self.client is None or not self.client.is_configured:
            logger.info("narrative_enrichment_unavailable", report_type=report_type.value)
            for name in NARRATIVE_FIELDS:
                values[name] = TEMPLATES[name](summary, report_type, risk_level)
                sources[name] = SOURCE_TEMPLATE
        else:
            context = _summary_context(summary, report_type, risk_level)
            workers = min(self.max_workers, len(NARRATIVE_FIELDS))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    name: executor.submit(self._generate_field, name, context)
                    for name in NARRATIVE_FIELDS
                }
                for name, future in futures.items():
                    try:
                        values[name] = future.result()
                        sources[name] = SOURCE_LLM
                    except Exception as e:
                        logger.warning(
                            "narrative_field_fallback",
                            field=name,
                            report_type=report_type.value,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        values[name] = TEMPLATES[name](summary, report_type, risk_level)
                        sources[name] = SOURCE_TEMPLATE

        result = NarrativeResult(
            executive_summary=values["executive_summary"],
            recommendations=values["recommendations"],
            risk_level=risk_level,
            risk_assessment=values["risk_assessment"],
            technical_analysis=values["technical_analysis"],
            sources=sources,
        )
        logger.info(
            "narrative_enrichment_complete",
            report_type=report_type.value,
            risk_level=risk_level.value,
            degraded=result.degraded,
        )
        return result

    def _generate_field(self, name: str, context: str):
        text = self.client.generate(
            SYSTEM_PROMPT,
            f"{PROMPTS[name]}\n\n{context}",
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        if name == "recommendations":
            items = parse_recommendations(text)
            if not items:
                raise TextGenerationError("No recommendations in generated text")
            return items
        return text
