"""
Search Service

Unit search with pagination, filter-spec queries with aggregations,
type-ahead suggestions and cross-entity text search.
"""
import math
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import asc, desc, func, select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.gridrisk.db.models import Unit
from src.gridrisk.db.repository import (
    DistrictStatRepository,
    NotificationRepository,
    ReportRepository,
    UnitRepository,
)
from src.gridrisk.exceptions import DataFetchError, InvalidFilterError
from src.gridrisk.models.risk import RiskTier
from src.gridrisk.search.filters import (
    Equals,
    FieldKind,
    FilterSpec,
    InSet,
    Range,
    UNIT_FILTER_FIELDS,
    build_predicates,
    contains_any,
    parse_filter_specs,
)
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

TEXT_SEARCH_FIELDS = ("name", "urn", "service_no", "district")
ENTITY_TYPES = ("units", "reports", "notifications")


class UnitSearchCriteria(BaseModel):
    query: Optional[str] = None
    districts: List[str] = Field(default_factory=list)
    tiers: List[RiskTier] = Field(default_factory=list)
    risk_score_min: Optional[float] = None
    risk_score_max: Optional[float] = None
    arrears_min: Optional[float] = None
    arrears_max: Optional[float] = None
    disconnect_flag: Optional[bool] = None
    sort_by: str = "risk_score"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=200)

    def to_specs(self) -> List[FilterSpec]:
        specs: List[FilterSpec] = []
        if self.districts:
            specs.append(InSet(field="district", values=list(self.districts)))
        if self.tiers:
            specs.append(InSet(field="tier", values=[tier.value for tier in self.tiers]))
        if self.risk_score_min is not None or self.risk_score_max is not None:
            specs.append(Range(field="risk_score", low=self.risk_score_min, high=self.risk_score_max))
        if self.arrears_min is not None or self.arrears_max is not None:
            specs.append(Range(field="arrears", low=self.arrears_min, high=self.arrears_max))
        if self.disconnect_flag is not None:
            specs.append(Equals(field="disconnect_flag", value=self.disconnect_flag))
        return specs


class Aggregation(BaseModel):
    type: Literal["count", "sum", "avg", "min", "max"]
    field: str


_AGGREGATE_FUNCTIONS = {
    "sum": func.sum,
    "avg": func.avg,
    "min": func.min,
    "max": func.max,
}


class SearchService:
    """
    Read-only query operations over units, reports and notifications.
    """

    def __init__(self, session: Session):
        self.session = session
        self.units = UnitRepository()
        self.districts = DistrictStatRepository()
        self.reports = ReportRepository()
        self.notifications = NotificationRepository()

    def search_units(self, criteria: UnitSearchCriteria) -> Dict[str, Any]:
        """
        Paginated unit search.

        Returns:
            Dictionary with 'units' and 'pagination' (page, limit, total, pages)

        Raises:
            InvalidFilterError: Unknown sort field or invalid ranges
        """
        if criteria.sort_by not in UnitRepository.SORTABLE_FIELDS:
            raise InvalidFilterError(f"Cannot sort by {criteria.sort_by}")

        try:
            predicates = build_predicates(criteria.to_specs())
        except ValidationError as e:
            raise InvalidFilterError(f"Invalid search range: {e.errors()[0]['msg']}") from e
        if criteria.query and criteria.query.strip():
            predicates.append(contains_any(TEXT_SEARCH_FIELDS, criteria.query.strip()))

        column = getattr(Unit, criteria.sort_by)
        direction = asc if criteria.sort_order == "asc" else desc
        offset = (criteria.page - 1) * criteria.limit

        try:
            total = self.units.count_matching(self.session, predicates)
            units = self.units.fetch(
                self.session,
                predicates,
                order_by=(direction(column), Unit.id),
                limit=criteria.limit,
                offset=offset,
                with_details=True,
            )
        except SQLAlchemyError as e:
            raise DataFetchError(f"Unit search failed: {e}") from e

        logger.info("unit_search_complete", total=total, page=criteria.page, returned=len(units))
        return {
            "units": units,
            "pagination": {
                "page": criteria.page,
                "limit": criteria.limit,
                "total": total,
                "pages": math.ceil(total / criteria.limit) if total else 0,
            },
        }

    def advanced_filter(
        self,
        raw_specs: Iterable[Dict[str, Any]],
        aggregations: Iterable[Dict[str, Any]] = (),
    ) -> Dict[str, Any]:
        """
        Apply filter specifications and compute aggregations over the matches.

        Aggregation results are keyed '<field>_<type>'. Averages, minimums and
        maximums over an empty match set are 0.

        Raises:
            InvalidFilterError: Bad specification or aggregation
        """
        specs = parse_filter_specs(raw_specs)
        try:
            requested = [Aggregation.model_validate(item) for item in aggregations]
        except ValidationError as e:
            raise InvalidFilterError(f"Malformed aggregation: {e.errors()[0]['msg']}") from e

        for agg in requested:
            if agg.type != "count" and UNIT_FILTER_FIELDS.get(agg.field) is not FieldKind.NUMERIC:
                raise InvalidFilterError(f"Cannot {agg.type} non-numeric field {agg.field}")

        predicates = build_predicates(specs)
        try:
            units = self.units.fetch(self.session, predicates)
            results: Dict[str, Any] = {"units": units}
            for agg in requested:
                results[f"{agg.field}_{agg.type}"] = self._aggregate(agg, predicates)
        except SQLAlchemyError as e:
            raise DataFetchError(f"Advanced filter failed: {e}") from e

        logger.info("advanced_filter_complete", matched=len(units), aggregations=len(requested))
        return results

    def _aggregate(self, agg: Aggregation, predicates) -> float:
        if agg.type == "count":
            return self.units.count_matching(self.session, predicates)

        column = func.coalesce(getattr(Unit, agg.field), 0)
        query = select(func.coalesce(_AGGREGATE_FUNCTIONS[agg.type](column), 0))
        query = query.select_from(Unit)
        if predicates:
            query = query.where(and_(*predicates))
        value = self.session.scalar(query)
        return round(float(value or 0), 2)

    def suggestions(self, query: str, kind: str = "all") -> List[Dict[str, str]]:
        """
        Type-ahead suggestions for districts and units, five of each.
        """
        text = query.strip()
        if not text:
            return []

        suggestions = []
        if kind in ("all", "districts"):
            suggestions.extend(
                {"text": name, "type": "district", "category": "Districts"}
                for name in self.districts.names_like(self.session, text, limit=5)
            )
        if kind in ("all", "units"):
            units = self.units.fetch(self.session, [contains_any(("name", "urn"), text)], limit=5)
            suggestions.extend(
                {"text": f"{unit.name} ({unit.urn})", "type": "unit", "category": "Units"}
                for unit in units
            )
        return suggestions

    def full_text_search(
        self,
        query: str,
        user_id: str,
        entity_types: Iterable[str] = ("units",),
    ) -> Dict[str, List[Any]]:
        """
        Substring search across entity types.

        Units match on name or urn (10 results); reports on title or
        description and notifications on title or message (5 each).
        Reports and notifications are limited to those owned by user_id.
        """
        wanted = list(entity_types)
        unknown = [name for name in wanted if name not in ENTITY_TYPES]
        if unknown:
            raise InvalidFilterError(f"Unknown entity types: {', '.join(unknown)}")

        text = query.strip()
        results: Dict[str, List[Any]] = {}
        if "units" in wanted:
            results["units"] = self.units.text_search(self.session, text, limit=10)
        if "reports" in wanted:
            results["reports"] = self.reports.search(self.session, text, user_id, limit=5)
        if "notifications" in wanted:
            results["notifications"] = self.notifications.search(self.session, text, user_id, limit=5)

        logger.debug("full_text_search_complete", query=text, entity_types=wanted, user_id=user_id)
        return results
