"""
Tests for Filter Specifications
"""
from datetime import datetime, timezone

import pytest

from src.gridrisk.db.repository import UnitRepository
from src.gridrisk.exceptions import InvalidFilterError
from src.gridrisk.search.filters import (
    Equals,
    ReportFilters,
    build_predicates,
    contains_any,
    parse_filter_specs,
)


class TestParseFilterSpecs:
    """Tests for parsing and validating raw filter objects."""

    def test_valid_specs(self):
        """Test each variant parses for a compatible field."""
        specs = parse_filter_specs([
            {"op": "equals", "field": "district", "value": "Chennai"},
            {"op": "range", "field": "risk_score", "low": 50, "high": 90},
            {"op": "in_set", "field": "tier", "values": ["RED", "AMBER"]},
            {"op": "pattern", "field": "name", "pattern": "mill"},
            {"op": "equals", "field": "disconnect_flag", "value": True},
        ])

        assert [spec.op for spec in specs] == ["equals", "range", "in_set", "pattern", "equals"]

    @pytest.mark.parametrize("raw", [
        {"op": "equals", "field": "password", "value": "x"},
        {"op": "range", "field": "name", "low": 1},
        {"op": "range", "field": "risk_score"},
        {"op": "range", "field": "risk_score", "low": 90, "high": 10},
        {"op": "equals", "field": "risk_score", "value": "high"},
        {"op": "equals", "field": "risk_score", "value": True},
        {"op": "equals", "field": "disconnect_flag", "value": "yes"},
        {"op": "pattern", "field": "arrears", "pattern": "1"},
        {"op": "in_set", "field": "tier", "values": []},
        {"op": "drop_table", "field": "urn"},
        {"field": "urn", "value": "x"},
    ])
    def test_rejected_specs(self, raw):
        """Test that malformed or disallowed specs raise InvalidFilterError."""
        with pytest.raises(InvalidFilterError):
            parse_filter_specs([raw])


class TestBuildPredicates:
    """Tests for predicate construction against a real database."""

    def test_predicates_filter_units(self, test_db, make_unit):
        """Test combined predicates select the expected rows."""
        make_unit(name="Salem Manufacturing Unit", district="Salem", risk_score=91.2, tier="RED", disconnect_flag=True)
        make_unit(name="Trichy IT Campus", district="Trichy", risk_score=45.6, tier="AMBER")
        make_unit(name="Salem Weaving 100%", district="Salem", risk_score=20.0, tier="GREEN")

        predicates = build_predicates(parse_filter_specs([
            {"op": "equals", "field": "district", "value": "Salem"},
            {"op": "range", "field": "risk_score", "low": 50},
        ]))
        units = UnitRepository().fetch(test_db, predicates)

        assert [u.name for u in units] == ["Salem Manufacturing Unit"]

    def test_pattern_escapes_wildcards(self, test_db, make_unit):
        """Test that % in a pattern matches literally."""
        make_unit(name="Salem Weaving 100%")
        make_unit(name="Salem Weaving 1000")

        predicates = build_predicates(parse_filter_specs([
            {"op": "pattern", "field": "name", "pattern": "100%"},
        ]))
        units = UnitRepository().fetch(test_db, predicates)

        assert [u.name for u in units] == ["Salem Weaving 100%"]

    def test_contains_any_is_case_insensitive_or(self, test_db, make_unit):
        """Test contains_any matches any field."""
        make_unit(name="Madurai Residential Society", urn="TN003456789")
        make_unit(name="Other", urn="TN000000001", district="MADURAI")
        make_unit(name="Unrelated", district="Chennai")

        units = UnitRepository().fetch(test_db, [contains_any(("name", "district"), "madurai")])

        assert len(units) == 2

    def test_build_rejects_unvalidated_spec(self):
        """Test that specs constructed directly are still validated."""
        with pytest.raises(InvalidFilterError):
            build_predicates([Equals(field="secret", value="x")])


class TestReportFilters:
    """Tests for report request filters."""

    def test_empty_payload(self):
        filters = ReportFilters.parse(None)
        assert filters.to_specs() == []

    def test_naive_dates_assumed_utc(self):
        """Test that naive dates are treated as UTC."""
        filters = ReportFilters.parse({"date_from": "2024-01-01T00:00:00"})
        assert filters.date_from == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_condition_range_mixes_naive_and_aware_bounds(self):
        """Test that a naive bound is read as UTC next to an aware one."""
        filters = ReportFilters.parse({"conditions": [{
            "op": "range",
            "field": "last_updated",
            "low": "2024-01-01T00:00:00",
            "high": "2024-02-01T00:00:00Z",
        }]})
        condition = filters.conditions[0]

        assert condition.low == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert condition.high == datetime(2024, 2, 1, tzinfo=timezone.utc)

    def test_condition_range_mixed_bounds_out_of_order(self):
        with pytest.raises(InvalidFilterError):
            ReportFilters.parse({"conditions": [{
                "op": "range",
                "field": "last_updated",
                "low": "2024-03-01T00:00:00Z",
                "high": "2024-02-01T00:00:00",
            }]})
        with pytest.raises(InvalidFilterError):
            parse_filter_specs([{
                "op": "range",
                "field": "last_updated",
                "low": "2024-03-01T00:00:00",
                "high": "2024-02-01T00:00:00+00:00",
            }])

    def test_date_order_enforced(self):
        with pytest.raises(InvalidFilterError):
            ReportFilters.parse({"date_from": "2024-02-01", "date_to": "2024-01-01"})

    def test_unknown_tier_rejected(self):
        with pytest.raises(InvalidFilterError):
            ReportFilters.parse({"tiers": ["PURPLE"]})

    def test_conditions_validated(self):
        """Test that nested conditions are checked against the whitelist."""
        with pytest.raises(InvalidFilterError):
            ReportFilters.parse({"conditions": [{"op": "equals", "field": "nope", "value": 1}]})

    def test_specs_from_fields(self):
        filters = ReportFilters.parse({
            "districts": ["Chennai"],
            "tiers": ["RED"],
            "conditions": [{"op": "range", "field": "arrears", "low": 10000}],
        })
        specs = filters.to_specs()

        assert [(spec.op, spec.field) for spec in specs] == [
            ("in_set", "district"),
            ("in_set", "tier"),
            ("range", "arrears"),
        ]
