"""
Tests for Unit Analysis
"""
import pytest

from src.gridrisk.analysis.unit_analysis import (
    AnalysisType,
    UnitAnalysisService,
    UnitContext,
    build_prompt,
    confidence_for,
    template_analysis,
)
from src.gridrisk.db.models import AIAnalysis
from src.gridrisk.exceptions import NotFoundError, TextGenerationError


class RecordingClient:
    is_configured = True

    def __init__(self, text="Generated analysis."):
        self.text = text
        self.calls = []

    def generate(self, system_prompt, user_prompt, max_tokens=None, temperature=None):
        self.calls.append({"prompt": user_prompt, "max_tokens": max_tokens, "temperature": temperature})
        return self.text


class FailingClient:
    is_configured = True

    def generate(self, system_prompt, user_prompt, max_tokens=None, temperature=None):
        raise TextGenerationError("service unavailable")


@pytest.fixture
def detailed_unit(make_unit, add_details, test_db):
    unit = make_unit(
        name="Salem Manufacturing Unit",
        urn="TN004567890",
        district="Salem",
        risk_score=91.2,
        tier="RED",
        arrears=125000.0,
        disconnect_flag=True,
        kwh_consumption=[800, 820, 900, 1000, 1100, 1200, 1300, 1400],
    )
    add_details(unit)
    test_db.commit()
    return unit


class TestConfidence:
    def test_complete_unit_is_capped(self, detailed_unit):
        assert confidence_for(detailed_unit) == 0.95

    def test_sparse_unit(self, make_unit):
        unit = make_unit(arrears=None, kwh_consumption=None)

        assert confidence_for(unit) == 0.2

    def test_half_complete(self, make_unit):
        unit = make_unit(arrears=0.0, kwh_consumption=[100, 110])

        assert confidence_for(unit) == pytest.approx(0.6)


class TestUnitContext:
    def test_keeps_recent_readings_and_alerts(self, detailed_unit, test_db):
        detailed_unit.alert_history[0].alert_date = detailed_unit.alert_history[0].alert_date.replace(day=28)
        test_db.flush()

        context = UnitContext.from_unit(detailed_unit)

        assert context.recent_consumption == [900, 1000, 1100, 1200, 1300, 1400]
        assert [a["date"] for a in context.recent_alerts] == [
            "2024-01-08", "2024-01-15", "2024-01-22", "2024-01-28",
        ]
        assert context.drivers[0]["feature"] == "Payment History"

    def test_risk_assessment_prompt(self, detailed_unit):
        prompt = build_prompt(UnitContext.from_unit(detailed_unit), AnalysisType.RISK_ASSESSMENT)

        assert "Salem Manufacturing Unit (TN004567890)" in prompt
        assert "Disconnection flag: Yes" in prompt
        assert "- Payment History: 3 months overdue (impact 0.35)" in prompt

    def test_recommendations_prompt_embeds_context(self, detailed_unit):
        prompt = build_prompt(UnitContext.from_unit(detailed_unit), AnalysisType.RECOMMENDATIONS)

        assert '"urn": "TN004567890"' in prompt
        assert "arrears collection" in prompt


class TestTemplates:
    def test_recommendations_are_numbered(self, detailed_unit):
        text = template_analysis(UnitContext.from_unit(detailed_unit), AnalysisType.RECOMMENDATIONS)

        assert "1. Schedule a field inspection this week" in text
        assert "Address the leading risk driver: Payment History" in text

    def test_trend_reports_rising_consumption(self, detailed_unit):
        text = template_analysis(UnitContext.from_unit(detailed_unit), AnalysisType.TREND_ANALYSIS)

        assert "Consumption is rising" in text

    def test_trend_without_readings(self, make_unit):
        unit = make_unit(kwh_consumption=None)

        text = template_analysis(UnitContext.from_unit(unit), AnalysisType.TREND_ANALYSIS)

        assert "Not enough consumption readings" in text


class TestUnitAnalysisService:
    def test_generated_analysis_is_stored(self, detailed_unit, test_db):
        client = RecordingClient()

        result = UnitAnalysisService(test_db, client=client).analyze(
            detailed_unit.id, AnalysisType.RISK_ASSESSMENT, requested_by="user-1"
        )

        assert result.analysis == "Generated analysis."
        assert result.source == "llm"
        assert result.confidence_score == 0.95
        assert client.calls[0]["max_tokens"] == 1000
        assert client.calls[0]["temperature"] == 0.7

        stored = test_db.get(AIAnalysis, result.analysis_id)
        assert stored.response == "Generated analysis."
        assert stored.requested_by == "user-1"
        assert stored.prompt == client.calls[0]["prompt"]

    def test_falls_back_to_template(self, detailed_unit, test_db):
        result = UnitAnalysisService(test_db, client=FailingClient()).analyze(detailed_unit.id, "trend_analysis")

        assert result.source == "template"
        assert result.analysis_type == "trend_analysis"
        assert "Consumption is rising" in result.analysis

    def test_no_client_uses_template(self, detailed_unit, test_db):
        result = UnitAnalysisService(test_db).analyze(detailed_unit.id)

        assert result.source == "template"
        assert result.unit_context["urn"] == "TN004567890"

    def test_unknown_unit(self, test_db):
        with pytest.raises(NotFoundError):
            UnitAnalysisService(test_db).analyze(999)

    def test_unknown_analysis_type(self, detailed_unit, test_db):
        with pytest.raises(ValueError):
            UnitAnalysisService(test_db).analyze(detailed_unit.id, "horoscope")

    def test_history_newest_first(self, detailed_unit, test_db):
        service = UnitAnalysisService(test_db)
        first = service.analyze(detailed_unit.id, AnalysisType.RISK_ASSESSMENT)
        second = service.analyze(detailed_unit.id, AnalysisType.RECOMMENDATIONS)

        history = service.history(detailed_unit.id)

        assert [a.id for a in history] == [second.analysis_id, first.analysis_id]

    def test_history_unknown_unit(self, test_db):
        with pytest.raises(NotFoundError):
            UnitAnalysisService(test_db).history(999)
