"""
Domain Types

Enumerations and helpers independent of the persistence layer.
"""
from src.gridrisk.models.risk import (
    RiskTier,
    ReportType,
    ReportStatus,
    Severity,
    TIER_ORDER,
    tier_for_score,
)

__all__ = [
    "RiskTier",
    "ReportType",
    "ReportStatus",
    "Severity",
    "TIER_ORDER",
    "tier_for_score",
]
