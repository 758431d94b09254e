"""
Tests for Search Service
"""
import pytest

from src.gridrisk.db.repository import NotificationRepository, ReportRepository
from src.gridrisk.exceptions import InvalidFilterError
from src.gridrisk.models.risk import RiskTier
from src.gridrisk.search.service import SearchService, UnitSearchCriteria


@pytest.fixture
def units(make_unit, district_stats):
    return [
        make_unit(name="Chennai Commercial Complex", urn="TN001234567", district="Chennai",
                  risk_score=85.5, tier="RED", arrears=45000.0),
        make_unit(name="Coimbatore Textile Mill", urn="TN002345678", district="Coimbatore",
                  risk_score=55.0, tier="AMBER", arrears=28000.0),
        make_unit(name="Madurai Residential Society", urn="TN003456789", district="Madurai",
                  risk_score=25.8, tier="GREEN", arrears=2500.0),
        make_unit(name="Salem Manufacturing Unit", urn="TN004567890", district="Salem",
                  risk_score=91.2, tier="RED", arrears=125000.0, disconnect_flag=True),
        make_unit(name="Trichy IT Campus", urn="TN005678901", district="Trichy",
                  risk_score=45.6, tier="AMBER", arrears=12000.0),
    ]


class TestSearchUnits:
    """Tests for paginated unit search."""

    def test_default_sort_and_pagination(self, test_db, units):
        result = SearchService(test_db).search_units(UnitSearchCriteria(limit=2))

        assert [u.name for u in result["units"]] == ["Salem Manufacturing Unit", "Chennai Commercial Complex"]
        assert result["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}

    def test_last_page(self, test_db, units):
        result = SearchService(test_db).search_units(UnitSearchCriteria(limit=2, page=3))

        assert [u.name for u in result["units"]] == ["Madurai Residential Society"]

    def test_filters_combine(self, test_db, units):
        criteria = UnitSearchCriteria(tiers=[RiskTier.RED, RiskTier.AMBER], arrears_max=50000, sort_by="name", sort_order="asc")

        result = SearchService(test_db).search_units(criteria)

        assert [u.name for u in result["units"]] == [
            "Chennai Commercial Complex", "Coimbatore Textile Mill", "Trichy IT Campus",
        ]

    def test_query_matches_any_text_field(self, test_db, units):
        result = SearchService(test_db).search_units(UnitSearchCriteria(query="tn00456"))

        assert [u.urn for u in result["units"]] == ["TN004567890"]

    def test_rejects_unknown_sort(self, test_db, units):
        with pytest.raises(InvalidFilterError):
            SearchService(test_db).search_units(UnitSearchCriteria(sort_by="service_no; drop"))

    def test_rejects_inverted_range(self, test_db, units):
        with pytest.raises(InvalidFilterError):
            SearchService(test_db).search_units(UnitSearchCriteria(risk_score_min=90, risk_score_max=10))

    def test_no_results(self, test_db, units):
        result = SearchService(test_db).search_units(UnitSearchCriteria(districts=["Vellore"]))

        assert result["units"] == []
        assert result["pagination"]["pages"] == 0


class TestAdvancedFilter:
    """Tests for filter-spec queries with aggregations."""

    def test_aggregations(self, test_db, units):
        result = SearchService(test_db).advanced_filter(
            [{"op": "equals", "field": "tier", "value": "RED"}],
            [
                {"type": "count", "field": "risk_score"},
                {"type": "sum", "field": "arrears"},
                {"type": "avg", "field": "risk_score"},
                {"type": "max", "field": "risk_score"},
            ],
        )

        assert len(result["units"]) == 2
        assert result["risk_score_count"] == 2
        assert result["arrears_sum"] == 170000.0
        assert result["risk_score_avg"] == pytest.approx(88.35)
        assert result["risk_score_max"] == 91.2

    def test_empty_match_aggregates_to_zero(self, test_db, units):
        result = SearchService(test_db).advanced_filter(
            [{"op": "equals", "field": "district", "value": "Vellore"}],
            [{"type": "avg", "field": "arrears"}],
        )

        assert result["units"] == []
        assert result["arrears_avg"] == 0

    @pytest.mark.parametrize("aggregation", [
        {"type": "sum", "field": "name"},
        {"type": "median", "field": "arrears"},
        {"type": "avg", "field": "password"},
    ])
    def test_rejects_bad_aggregation(self, test_db, units, aggregation):
        with pytest.raises(InvalidFilterError):
            SearchService(test_db).advanced_filter([], [aggregation])


class TestSuggestionsAndTextSearch:
    """Tests for type-ahead suggestions and cross-entity search."""

    def test_suggestions(self, test_db, units):
        suggestions = SearchService(test_db).suggestions("chen")

        assert {"text": "Chennai", "type": "district", "category": "Districts"} in suggestions
        assert {"text": "Chennai Commercial Complex (TN001234567)", "type": "unit", "category": "Units"} in suggestions

    def test_suggestions_by_kind(self, test_db, units):
        suggestions = SearchService(test_db).suggestions("chen", "units")

        assert {s["type"] for s in suggestions} == {"unit"}

    def test_blank_query(self, test_db, units):
        assert SearchService(test_db).suggestions("   ") == []

    def test_full_text_across_entities(self, test_db, units):
        NotificationRepository().create(
            test_db, user_id="u1", type="risk_alert", title="Critical Risk Alert: Salem Manufacturing Unit",
            message="Immediate attention required.", severity="HIGH",
        )

        found = SearchService(test_db).full_text_search("salem", "u1", ["units", "notifications", "reports"])

        assert [u.name for u in found["units"]] == ["Salem Manufacturing Unit"]
        assert len(found["notifications"]) == 1
        assert found["reports"] == []

    def test_full_text_scoped_to_owner(self, test_db, units):
        """Test that reports and notifications of other users never match."""
        reports = ReportRepository()
        notifications = NotificationRepository()
        for owner in ("alice", "bob"):
            reports.create(test_db, report_type="custom", title="Custom Report", generated_by=owner)
            notifications.create(
                test_db, user_id=owner, type="report_ready", title="Custom report ready",
                message="Your custom report is ready for viewing.", severity="MEDIUM",
            )

        found = SearchService(test_db).full_text_search("custom", "alice", ["reports", "notifications"])

        assert [r.generated_by for r in found["reports"]] == ["alice"]
        assert [n.user_id for n in found["notifications"]] == ["alice"]

        nobody = SearchService(test_db).full_text_search("custom", "carol", ["reports", "notifications"])
        assert nobody == {"reports": [], "notifications": []}

    def test_unknown_entity_type(self, test_db, units):
        with pytest.raises(InvalidFilterError):
            SearchService(test_db).full_text_search("salem", "u1", ["profiles"])
