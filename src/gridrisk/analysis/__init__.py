"""
Analysis Module

Per-unit analysis, trend prediction, the activity log and the district
stats refresh.
"""
from src.gridrisk.analysis.unit_analysis import AnalysisType, UnitAnalysisResult, UnitAnalysisService
from src.gridrisk.analysis.trends import TrendPrediction, TrendPredictionService, TrendScope
from src.gridrisk.analysis.activities import ActivityService
from src.gridrisk.analysis.district_stats import district_counts, refresh_district_stats

__all__ = [
    "AnalysisType",
    "UnitAnalysisResult",
    "UnitAnalysisService",
    "TrendPrediction",
    "TrendPredictionService",
    "TrendScope",
    "ActivityService",
    "district_counts",
    "refresh_district_stats",
]
