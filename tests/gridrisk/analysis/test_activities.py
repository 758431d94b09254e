"""
Tests for the Activity Log
"""
from datetime import datetime, timedelta, timezone

import pytest

from src.gridrisk.analysis.activities import ActivityService
from src.gridrisk.exceptions import InvalidFilterError, NotFoundError, PermissionDeniedError


@pytest.fixture
def service(test_db):
    return ActivityService(test_db)


class TestActivityLog:
    def test_log_and_list_for_user(self, service, make_unit):
        unit = make_unit()
        service.log("user-1", "viewed_unit", unit_id=unit.id, meta={"tab": "drivers"},
                    ip_address="10.0.0.1", user_agent="pytest")
        service.log("user-1", "exported_report", description="Daily summary as CSV")
        service.log("user-2", "viewed_unit", unit_id=unit.id)

        mine = service.for_user("user-1")

        assert [a.action for a in mine] == ["exported_report", "viewed_unit"]
        assert mine[1].meta == {"tab": "drivers"}
        assert mine[1].ip_address == "10.0.0.1"

    def test_for_unit_across_users(self, service, make_unit):
        unit = make_unit()
        other = make_unit()
        service.log("user-1", "viewed_unit", unit_id=unit.id)
        service.log("user-2", "flagged_unit", unit_id=unit.id)
        service.log("user-2", "viewed_unit", unit_id=other.id)

        activities = service.for_unit(unit.id)

        assert [(a.user_id, a.action) for a in activities] == [("user-2", "flagged_unit"), ("user-1", "viewed_unit")]

    def test_limits(self, service):
        for i in range(5):
            service.log("user-1", f"action_{i}")

        assert len(service.for_user("user-1", limit=3)) == 3

    def test_unknown_unit(self, service):
        with pytest.raises(NotFoundError):
            service.log("user-1", "viewed_unit", unit_id=999)

    def test_blank_action(self, service):
        with pytest.raises(InvalidFilterError):
            service.log("user-1", "   ")


class TestAuditTrail:
    def test_filters(self, service, make_unit):
        unit = make_unit()
        service.log("user-1", "report_exported")
        service.log("user-2", "unit_viewed", unit_id=unit.id)
        service.log("user-2", "REPORT_generated")

        assert [a.action for a in service.audit_trail(action="report")] == ["REPORT_generated", "report_exported"]
        assert [a.action for a in service.audit_trail(user_id="user-2", unit_id=unit.id)] == ["unit_viewed"]

    def test_time_window(self, service):
        service.log("user-1", "report_exported")
        now = datetime.now(timezone.utc)

        assert service.audit_trail(start=now + timedelta(hours=1)) == []
        assert len(service.audit_trail(start=now - timedelta(hours=1), end=now + timedelta(hours=1))) == 1

    def test_mixed_naive_and_aware_bounds(self, service):
        start = datetime(2024, 1, 2)
        end = datetime(2024, 1, 1, tzinfo=timezone.utc)

        with pytest.raises(InvalidFilterError):
            service.audit_trail(start=start, end=end)

    def test_requires_admin_or_manager(self, service, make_profile):
        make_profile("viewer-1")
        make_profile("manager-1", role="manager")
        service.log("viewer-1", "unit_viewed")

        with pytest.raises(PermissionDeniedError):
            service.audit_trail(requested_by="viewer-1")
        with pytest.raises(PermissionDeniedError):
            service.audit_trail(requested_by="nobody")
        assert len(service.audit_trail(requested_by="manager-1")) == 1
