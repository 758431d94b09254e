"""
Reports Module

Report pipeline: aggregation, narrative enrichment, assembly and the
status lifecycle.
"""
from src.gridrisk.reports.aggregator import Aggregator, RiskSummary, DistrictSummary, TopRiskUnit
from src.gridrisk.reports.narrative import NarrativeEnricher, NarrativeResult, RiskLevel, classify_risk_level
from src.gridrisk.reports.assembler import ReportAssembler, ReportMetadata
from src.gridrisk.reports.store import ReportStore, ReportNotifier
from src.gridrisk.reports.service import ReportService

__all__ = [
    "Aggregator",
    "RiskSummary",
    "DistrictSummary",
    "TopRiskUnit",
    "NarrativeEnricher",
    "NarrativeResult",
    "RiskLevel",
    "classify_risk_level",
    "ReportAssembler",
    "ReportMetadata",
    "ReportStore",
    "ReportNotifier",
    "ReportService",
]
