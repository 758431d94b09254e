"""
Report Assembly

Merges an aggregated summary, its narrative and report metadata into the
canonical JSON document, and flattens that document into a
section-delimited CSV export.
"""
import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.gridrisk.exceptions import AssemblyError
from src.gridrisk.models.risk import RiskTier, TIER_ORDER
from src.gridrisk.reports.aggregator import RiskSummary
from src.gridrisk.reports.narrative import NarrativeResult
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

DOCUMENT_SECTIONS = (
    "header",
    "executive_summary",
    "detailed_analysis",
    "recommendations",
    "risk_assessment",
    "compliance",
)

COMPLIANCE_BLOCK = {
    "data_sources": "Unit risk scores, arrears and alert history as supplied by the ingestion pipeline",
    "methodology": (
        "Tier counts, averages and rankings are computed deterministically from stored unit records. "
        "Narrative sections may be machine generated; risk level is derived from tier proportions only."
    ),
    "certification": "Generated automatically by GridRisk Monitor. Figures reflect data at generation time.",
    "retention": "Report payloads expire 30 days after generation.",
}


@dataclass
class ReportMetadata:
    report_id: str
    report_type: str
    title: str
    description: Optional[str]
    generated_by: Optional[str]
    generated_at: datetime
    filters: Dict[str, Any]


def _check_summary(summary: RiskSummary):
    if not isinstance(summary, RiskSummary):
        raise AssemblyError(f"Expected RiskSummary, got {type(summary).__name__}")
    missing = [tier.value for tier in TIER_ORDER if tier.value not in summary.tier_counts]
    if missing:
        raise AssemblyError(f"Summary is missing tier counts for {', '.join(missing)}")
    if sum(summary.tier_counts.values()) != summary.total_units:
        raise AssemblyError("Summary tier counts do not add up to total units")


def _fmt(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float):
        return f"{value:.2f}"
    return value


class ReportAssembler:
    """
    Serializes report content into JSON and CSV encodings.

    The JSON document is the complete representation: it holds every
    narrative field and the full raw summary. CSV is derived from it.
    """

    def build_document(
        self,
        metadata: ReportMetadata,
        summary: RiskSummary,
        narrative: NarrativeResult,
    ) -> Dict[str, Any]:
        """
        Build the canonical report document.

        Args:
            metadata: Report identity and request details
            summary: Aggregated statistics
            narrative: Enrichment output

        Returns:
            JSON-serializable document

        Raises:
            AssemblyError: Summary has an unexpected shape
        """
        _check_summary(summary)
        raw = summary.to_dict()

        document = {
            "header": {
                "report_id": metadata.report_id,
                "report_type": metadata.report_type,
                "title": metadata.title,
                "description": metadata.description,
                "generated_by": metadata.generated_by,
                "generated_at": metadata.generated_at.isoformat(),
                "filters": metadata.filters,
                "risk_level": narrative.risk_level.value,
            },
            "executive_summary": {
                "text": narrative.executive_summary,
                "total_units": summary.total_units,
                "tier_counts": dict(summary.tier_counts),
                "avg_risk_score": summary.avg_risk_score,
                "total_arrears": summary.total_arrears,
                "disconnected_count": summary.disconnected_count,
            },
            "detailed_analysis": {
                "technical_analysis": narrative.technical_analysis,
                "district_summaries": raw["district_summaries"],
                "top_risk_units": raw["top_risk_units"],
                "risk_trends": raw["risk_trends"],
                "summary": raw,
            },
            "recommendations": list(narrative.recommendations),
            "risk_assessment": {
                "risk_level": narrative.risk_level.value,
                "narrative": narrative.risk_assessment,
                "high_fraction": round(summary.high_fraction, 4),
                "medium_fraction": round(summary.medium_fraction, 4),
                "narrative_sources": dict(narrative.sources),
            },
            "compliance": dict(COMPLIANCE_BLOCK),
        }

        logger.debug("report_document_built", report_id=metadata.report_id)
        return document

    @staticmethod
    def _require(document: Dict[str, Any]):
        if not isinstance(document, dict):
            raise AssemblyError("Report document must be an object")
        missing = [name for name in DOCUMENT_SECTIONS if name not in document]
        if missing:
            raise AssemblyError(f"Report document is missing sections: {', '.join(missing)}")

    def to_json(self, document: Dict[str, Any]) -> str:
        self._require(document)
        return json.dumps(document, indent=2, ensure_ascii=False)

    def to_csv(self, document: Dict[str, Any]) -> str:
        """
        Flatten a report document into a section-delimited CSV table.

        Sections, in order: report header, executive summary, district
        summary, top risk units, narrative, recommendations, compliance.
        Fields are quoted only when needed; embedded quotes are doubled.

        Raises:
            AssemblyError: Document is missing a section or a required key
        """
        self._require(document)
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL)

        try:
            self._write_sections(writer, document)
        except (KeyError, TypeError) as e:
            raise AssemblyError(f"Malformed report document: {e}") from e

        return buffer.getvalue()

    def _write_sections(self, writer, document: Dict[str, Any]):
        header = document["header"]
        executive = document["executive_summary"]
        analysis = document["detailed_analysis"]
        assessment = document["risk_assessment"]
        counts = executive["tier_counts"]

        self._section(writer, "REPORT HEADER", ["Field", "Value"], [
            ["Report ID", header["report_id"]],
            ["Title", header["title"]],
            ["Report Type", header["report_type"]],
            ["Generated At", header["generated_at"]],
            ["Generated By", header.get("generated_by")],
            ["Risk Level", header["risk_level"]],
            ["Filters", json.dumps(header.get("filters") or {}, sort_keys=True)],
        ])

        self._section(writer, "EXECUTIVE SUMMARY", ["Metric", "Value"], [
            ["Total Units", executive["total_units"]],
            ["RED Units", counts[RiskTier.RED.value]],
            ["AMBER Units", counts[RiskTier.AMBER.value]],
            ["GREEN Units", counts[RiskTier.GREEN.value]],
            ["Average Risk Score", executive["avg_risk_score"]],
            ["Total Arrears", executive["total_arrears"]],
            ["Disconnected Units", executive["disconnected_count"]],
        ])

        self._section(
            writer,
            "DISTRICT SUMMARY",
            ["District", "Total Units", "RED", "AMBER", "GREEN", "Average Risk Score",
             "SLA Compliance", "Total Arrears", "Performance Score"],
            [
                [d["name"], d["total_units"], d["red_count"], d["amber_count"], d["green_count"],
                 d["avg_risk_score"], d["sla_compliance"], d["total_arrears"], d.get("performance_score")]
                for d in analysis["district_summaries"]
            ],
        )

        self._section(
            writer,
            "TOP RISK UNITS",
            ["Rank", "URN", "Name", "District", "Risk Score", "Tier", "Arrears"],
            [
                [rank, u["urn"], u["name"], u["district"], u["risk_score"], u["tier"], u["arrears"]]
                for rank, u in enumerate(analysis["top_risk_units"], 1)
            ],
        )

        self._section(writer, "NARRATIVE", ["Section", "Text"], [
            ["Executive Summary", executive["text"]],
            ["Risk Assessment", assessment["narrative"]],
            ["Technical Analysis", analysis["technical_analysis"]],
        ])

        self._section(
            writer,
            "RECOMMENDATIONS",
            ["#", "Recommendation"],
            [[i, text] for i, text in enumerate(document["recommendations"], 1)],
        )

        self._section(
            writer,
            "COMPLIANCE",
            ["Field", "Value"],
            [[key.replace("_", " ").title(), value] for key, value in document["compliance"].items()],
            last=True,
        )

    @staticmethod
    def _section(writer, title: str, columns: List[str], rows: List[List[Any]], last: bool = False):
        writer.writerow([title])
        writer.writerow(columns)
        for row in rows:
            writer.writerow([_fmt(value) for value in row])
        if not last:
            writer.writerow([])
