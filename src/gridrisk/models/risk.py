"""
Risk Domain Types

Enumerations shared by the data access, reporting and notification layers,
and the score-to-tier mapping.
"""
from enum import Enum
from typing import Optional

from config.settings import settings


class RiskTier(str, Enum):
    """
    Ordered risk category of a unit.

    Stored labels follow the dashboard colours: GREEN (low),
    AMBER (medium), RED (high).
    """

    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {RiskTier.GREEN: 0, RiskTier.AMBER: 1, RiskTier.RED: 2}

TIER_ORDER = (RiskTier.RED, RiskTier.AMBER, RiskTier.GREEN)


class ReportType(str, Enum):
    DAILY_SUMMARY = "daily_summary"
    WEEKLY_ANALYSIS = "weekly_analysis"
    DISTRICT_PERFORMANCE = "district_performance"
    RISK_ASSESSMENT = "risk_assessment"
    CUSTOM = "custom"

    @property
    def is_district_scoped(self) -> bool:
        return self in (
            ReportType.DAILY_SUMMARY,
            ReportType.WEEKLY_ANALYSIS,
            ReportType.DISTRICT_PERFORMANCE,
        )


class ReportStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ReportStatus.GENERATING


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


def tier_for_score(
    score: float,
    medium_threshold: Optional[float] = None,
    high_threshold: Optional[float] = None,
) -> RiskTier:
    """
    Map a 0-100 risk score to its tier.

    score < medium -> GREEN, medium <= score <= high -> AMBER,
    score > high -> RED. The mapping is monotonic in score.

    Args:
        score: Risk score (0-100)
        medium_threshold: Lower bound of AMBER (defaults to settings)
        high_threshold: Upper bound of AMBER (defaults to settings)

    Returns:
        RiskTier for the score
    """
    medium = settings.tier_medium_threshold if medium_threshold is None else medium_threshold
    high = settings.tier_high_threshold if high_threshold is None else high_threshold

    if score > high:
        return RiskTier.RED
    if score >= medium:
        return RiskTier.AMBER
    return RiskTier.GREEN
