"""
Tests for Narrative Enrichment
"""
import threading

import pytest

from src.gridrisk.exceptions import TextGenerationError
from src.gridrisk.models.risk import ReportType
from src.gridrisk.reports.aggregator import Aggregator
from src.gridrisk.reports.narrative import (
    NARRATIVE_FIELDS,
    NarrativeEnricher,
    RiskLevel,
    classify_risk_level,
    parse_recommendations,
)


def summary_for(tiers):
    scores = {"RED": 90.0, "AMBER": 50.0, "GREEN": 10.0}
    units = [
        {"urn": f"U{i}", "name": f"Unit {i}", "district": "Chennai",
         "risk_score": scores[tier], "tier": tier, "arrears": 100.0, "disconnect_flag": False}
        for i, tier in enumerate(tiers)
    ]
    return Aggregator().aggregate(units, ReportType.DAILY_SUMMARY)


class FailingClient:
    is_configured = True

    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self, system_prompt, user_prompt, max_tokens=None, temperature=None):
        with self._lock:
            self.calls += 1
        raise TextGenerationError("service unavailable")


class EchoClient:
    """Returns canned text and requires all calls to be in flight together."""
    is_configured = True

    def __init__(self, parties=4):
        self.barrier = threading.Barrier(parties, timeout=5)

    def generate(self, system_prompt, user_prompt, max_tokens=None, temperature=None):
        self.barrier.wait()
        if user_prompt.startswith("List three to five"):
            return "1. Inspect Salem units\n2) Recover arrears\n- Monitor AMBER units"
        return "Generated prose."


class TestClassifyRiskLevel:
    """Tests for the tier-fraction risk level."""

    @pytest.mark.parametrize("tiers,expected", [
        (["RED"] + ["GREEN"] * 4, RiskLevel.CRITICAL),
        (["RED"] * 3 + ["GREEN"] * 17, RiskLevel.HIGH),
        (["AMBER"] * 4 + ["GREEN"] * 6, RiskLevel.HIGH),
        (["RED"] + ["GREEN"] * 9, RiskLevel.MODERATE),
        (["AMBER"] * 3 + ["GREEN"] * 7, RiskLevel.MODERATE),
        (["GREEN"] * 10, RiskLevel.LOW),
        ([], RiskLevel.LOW),
    ])
    def test_levels(self, tiers, expected):
        assert classify_risk_level(summary_for(tiers)) is expected


class TestNarrativeEnricher:
    """Tests for generated and template narrative fields."""

    def test_no_client_uses_templates(self):
        """Test deterministic templates when generation is unavailable."""
        summary = summary_for(["RED"] + ["GREEN"] * 4)

        result = NarrativeEnricher(client=None).enrich(summary, ReportType.DAILY_SUMMARY)

        assert result.risk_level is RiskLevel.CRITICAL
        assert result.sources == {name: "template" for name in NARRATIVE_FIELDS}
        assert result.degraded
        assert "5 units monitored" in result.executive_summary
        assert result.recommendations

    def test_failing_client_falls_back_per_field(self):
        """Test that every field falls back when each call fails."""
        client = FailingClient()
        summary = summary_for(["RED", "AMBER", "GREEN"])

        result = NarrativeEnricher(client=client).enrich(summary, ReportType.WEEKLY_ANALYSIS)

        assert client.calls == len(NARRATIVE_FIELDS)
        assert set(result.sources.values()) == {"template"}
        assert result.risk_level is classify_risk_level(summary)
        assert result.technical_analysis

    def test_fields_generated_concurrently(self):
        """Test that the four generation calls run in parallel."""
        summary = summary_for(["RED", "GREEN", "GREEN"])

        result = NarrativeEnricher(client=EchoClient(), max_workers=4).enrich(summary, ReportType.CUSTOM)

        assert set(result.sources.values()) == {"llm"}
        assert not result.degraded
        assert result.executive_summary == "Generated prose."
        assert result.recommendations == ["Inspect Salem units", "Recover arrears", "Monitor AMBER units"]

    def test_risk_level_ignores_generated_text(self):
        """Test that generated prose cannot change the computed level."""
        class LowballClient:
            is_configured = True

            def generate(self, *args, **kwargs):
                return "Risk level: LOW"

        summary = summary_for(["RED"] * 5)
        result = NarrativeEnricher(client=LowballClient()).enrich(summary, ReportType.CUSTOM)

        assert result.risk_level is RiskLevel.CRITICAL


def test_parse_recommendations_strips_markers():
    text = "\n* First\n 2. Second\n\n• Third \n"
    assert parse_recommendations(text) == ["First", "Second", "Third"]
