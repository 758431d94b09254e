"""
Tests for Report Assembly
"""
import csv
import io
import json
from datetime import datetime, timezone

import pytest

from src.gridrisk.exceptions import AssemblyError
from src.gridrisk.models.risk import ReportType
from src.gridrisk.reports.aggregator import Aggregator
from src.gridrisk.reports.assembler import DOCUMENT_SECTIONS, ReportAssembler, ReportMetadata
from src.gridrisk.reports.narrative import NarrativeEnricher, RiskLevel, NarrativeResult


@pytest.fixture
def summary():
    units = [
        {"urn": "TN001234567", "name": 'Chennai "Commercial", Complex', "district": "Chennai",
         "risk_score": 85.5, "tier": "RED", "arrears": 45000.0, "disconnect_flag": False},
        {"urn": "TN005678901", "name": "Trichy IT Campus", "district": "Trichy",
         "risk_score": 45.6, "tier": "AMBER", "arrears": 12000.0, "disconnect_flag": False},
    ]
    return Aggregator().aggregate(units, ReportType.DISTRICT_PERFORMANCE, {"Chennai": 92.0})


@pytest.fixture
def metadata():
    return ReportMetadata(
        report_id="0f6b2c1e-1111-2222-3333-444455556666",
        report_type="district_performance",
        title="District Performance Report",
        description="Comprehensive district performance analysis",
        generated_by="user-1",
        generated_at=datetime(2024, 1, 15, 6, 0, tzinfo=timezone.utc),
        filters={"districts": ["Chennai", "Trichy"]},
    )


def sections(csv_text):
    """Split CSV rows into {section title: rows} using blank separator rows."""
    result = {}
    current = None
    for row in csv.reader(io.StringIO(csv_text)):
        if not row:
            current = None
        elif current is None:
            current = row[0]
            result[current] = []
        else:
            result[current].append(row)
    return result


class TestBuildDocument:
    """Tests for the canonical JSON document."""

    def test_sections_and_header(self, summary, metadata):
        narrative = NarrativeEnricher(client=None).enrich(summary, ReportType.DISTRICT_PERFORMANCE)

        document = ReportAssembler().build_document(metadata, summary, narrative)

        assert tuple(document) == DOCUMENT_SECTIONS
        assert document["header"]["generated_at"] == "2024-01-15T06:00:00+00:00"
        assert document["header"]["risk_level"] == narrative.risk_level.value
        assert document["executive_summary"]["tier_counts"] == {"RED": 1, "AMBER": 1, "GREEN": 0}
        assert document["detailed_analysis"]["summary"]["total_units"] == 2
        assert document["risk_assessment"]["narrative_sources"]["executive_summary"] == "template"
        json.dumps(document)

    def test_rejects_inconsistent_summary(self, summary, metadata):
        """Test that tier counts must add up to the unit total."""
        narrative = NarrativeEnricher(client=None).enrich(summary, ReportType.DISTRICT_PERFORMANCE)
        summary.tier_counts["GREEN"] = 5

        with pytest.raises(AssemblyError):
            ReportAssembler().build_document(metadata, summary, narrative)


class TestEncodings:
    """Tests for JSON and CSV export encodings."""

    def test_csv_preserves_special_characters(self, summary, metadata):
        """Test that commas, quotes and newlines survive a CSV round trip."""
        tricky = 'Arrears rose, sharply.\nSalem said "urgent" twice.'
        narrative = NarrativeResult(
            executive_summary=tricky,
            recommendations=['Call "Salem" ops, today', "Line one\nline two"],
            risk_level=RiskLevel.CRITICAL,
            risk_assessment="Critical.",
            technical_analysis="Bands, as usual.",
            sources={},
        )
        document = ReportAssembler().build_document(metadata, summary, narrative)

        parsed = sections(ReportAssembler().to_csv(document))

        assert list(parsed) == [
            "REPORT HEADER", "EXECUTIVE SUMMARY", "DISTRICT SUMMARY", "TOP RISK UNITS",
            "NARRATIVE", "RECOMMENDATIONS", "COMPLIANCE",
        ]
        narrative_rows = dict((row[0], row[1]) for row in parsed["NARRATIVE"][1:])
        assert narrative_rows["Executive Summary"] == tricky
        assert parsed["RECOMMENDATIONS"][1:] == [
            ["1", 'Call "Salem" ops, today'],
            ["2", "Line one\nline two"],
        ]
        top = parsed["TOP RISK UNITS"][1]
        assert top[:3] == ["1", "TN001234567", 'Chennai "Commercial", Complex']
        assert top[4] == "85.50"

    def test_csv_district_rows(self, summary, metadata):
        narrative = NarrativeEnricher(client=None).enrich(summary, ReportType.DISTRICT_PERFORMANCE)
        document = ReportAssembler().build_document(metadata, summary, narrative)

        parsed = sections(ReportAssembler().to_csv(document))
        districts = {row[0]: row for row in parsed["DISTRICT SUMMARY"][1:]}

        assert districts["Chennai"][6] == "92.00"
        assert districts["Trichy"][6] == ""

    def test_json_round_trip(self, summary, metadata):
        narrative = NarrativeEnricher(client=None).enrich(summary, ReportType.DISTRICT_PERFORMANCE)
        document = ReportAssembler().build_document(metadata, summary, narrative)

        assert json.loads(ReportAssembler().to_json(document)) == document

    def test_missing_section_rejected(self):
        with pytest.raises(AssemblyError):
            ReportAssembler().to_csv({"header": {}})

    def test_missing_key_rejected(self, summary, metadata):
        narrative = NarrativeEnricher(client=None).enrich(summary, ReportType.DISTRICT_PERFORMANCE)
        document = ReportAssembler().build_document(metadata, summary, narrative)
        del document["header"]["report_id"]

        with pytest.raises(AssemblyError):
            ReportAssembler().to_csv(document)
