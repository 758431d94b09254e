"""
Filter Specifications

Typed filter variants for unit queries. Every specification is validated
against the unit column whitelist before it is turned into a SQLAlchemy
predicate, so arbitrary request keys never reach the query builder.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, TypeAdapter, ValidationError, field_validator, model_validator
from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from src.gridrisk.db.models import Unit
from src.gridrisk.exceptions import InvalidFilterError
from src.gridrisk.models.risk import RiskTier
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

Scalar = Union[StrictBool, float, str]


class FieldKind(str, Enum):
    TEXT = "text"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


# Unit columns that may appear in a filter specification
UNIT_FILTER_FIELDS: Dict[str, FieldKind] = {
    "urn": FieldKind.TEXT,
    "name": FieldKind.TEXT,
    "district": FieldKind.TEXT,
    "service_no": FieldKind.TEXT,
    "tier": FieldKind.TEXT,
    "risk_score": FieldKind.NUMERIC,
    "arrears": FieldKind.NUMERIC,
    "peer_percentile": FieldKind.NUMERIC,
    "disconnect_flag": FieldKind.BOOLEAN,
    "last_updated": FieldKind.DATETIME,
}


def _as_utc(value):
    # Naive datetimes are taken to be UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Equals(BaseModel):
    """field == value"""
    op: Literal["equals"] = "equals"
    field: str
    value: Scalar


class Range(BaseModel):
    """low <= field <= high; either bound may be omitted, not both."""
    op: Literal["range"] = "range"
    field: str
    low: Optional[Union[float, datetime]] = None
    high: Optional[Union[float, datetime]] = None

    @field_validator("low", "high")
    @classmethod
    def assume_utc(cls, value):
        return _as_utc(value)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.low is None and self.high is None:
            raise ValueError("range filter needs at least one bound")
        if self.low is not None and self.high is not None:
            if type(self.low) is not type(self.high):
                raise ValueError("range bounds must have the same type")
            if self.low > self.high:
                raise ValueError("range low bound is greater than high bound")
        return self


class InSet(BaseModel):
    """field IN values"""
    op: Literal["in_set"] = "in_set"
    field: str
    values: List[Scalar] = Field(..., min_length=1)


class Pattern(BaseModel):
    """Case-insensitive substring match on a text field."""
    op: Literal["pattern"] = "pattern"
    field: str
    pattern: str = Field(..., min_length=1)


FilterSpec = Annotated[Union[Equals, Range, InSet, Pattern], Field(discriminator="op")]

_spec_list_adapter = TypeAdapter(List[FilterSpec])


def _field_kind(field: str) -> FieldKind:
    kind = UNIT_FILTER_FIELDS.get(field)
    if kind is None:
        raise InvalidFilterError(f"Unknown filter field: {field}")
    return kind


def _check_scalar(field: str, kind: FieldKind, value: Any):
    if kind is FieldKind.TEXT and not isinstance(value, str):
        raise InvalidFilterError(f"Field {field} expects text, got {type(value).__name__}")
    if kind is FieldKind.NUMERIC and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise InvalidFilterError(f"Field {field} expects a number, got {type(value).__name__}")
    if kind is FieldKind.BOOLEAN and not isinstance(value, bool):
        raise InvalidFilterError(f"Field {field} expects true/false, got {type(value).__name__}")
    if kind is FieldKind.DATETIME:
        raise InvalidFilterError(f"Field {field} only supports range filters")


def validate_spec(spec: FilterSpec) -> FilterSpec:
    """
    Check a specification against the field whitelist and column kinds.

    Args:
        spec: Parsed filter specification

    Returns:
        The same specification

    Raises:
        InvalidFilterError: Unknown field or operand type mismatch
    """
    kind = _field_kind(spec.field)

    if isinstance(spec, Equals):
        _check_scalar(spec.field, kind, spec.value)
    elif isinstance(spec, InSet):
        for value in spec.values:
            _check_scalar(spec.field, kind, value)
    elif isinstance(spec, Range):
        if kind not in (FieldKind.NUMERIC, FieldKind.DATETIME):
            raise InvalidFilterError(f"Field {spec.field} does not support range filters")
        expected = datetime if kind is FieldKind.DATETIME else float
        for bound in (spec.low, spec.high):
            if bound is not None and not isinstance(bound, expected):
                raise InvalidFilterError(f"Field {spec.field} range bounds must be {expected.__name__}")
    elif isinstance(spec, Pattern):
        if kind is not FieldKind.TEXT:
            raise InvalidFilterError(f"Field {spec.field} does not support pattern filters")

    return spec


def parse_filter_specs(raw: Iterable[Dict[str, Any]]) -> List[FilterSpec]:
    """
    Parse and validate loosely typed filter objects.

    Args:
        raw: Filter dictionaries, each with an 'op' tag

    Returns:
        Validated filter specifications

    Raises:
        InvalidFilterError: Malformed or disallowed specification
    """
    try:
        specs = _spec_list_adapter.validate_python(list(raw))
    except ValidationError as e:
        raise InvalidFilterError(f"Malformed filter specification: {e.errors()[0]['msg']}") from e

    return [validate_spec(spec) for spec in specs]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_predicates(specs: Iterable[FilterSpec]) -> List[ColumnElement]:
    """
    Translate validated specifications into SQLAlchemy predicates on Unit.

    Args:
        specs: Filter specifications

    Returns:
        List of boolean expressions, to be combined with AND
    """
    predicates = []
    for spec in specs:
        validate_spec(spec)
        column = getattr(Unit, spec.field)

        if isinstance(spec, Equals):
            predicates.append(column == spec.value)
        elif isinstance(spec, InSet):
            predicates.append(column.in_(spec.values))
        elif isinstance(spec, Range):
            if spec.low is not None:
                predicates.append(column >= spec.low)
            if spec.high is not None:
                predicates.append(column <= spec.high)
        elif isinstance(spec, Pattern):
            predicates.append(column.ilike(f"%{_escape_like(spec.pattern)}%", escape="\\"))

    logger.debug("filter_predicates_built", count=len(predicates))
    return predicates


def contains_any(fields: Iterable[str], text: str) -> ColumnElement:
    """
    OR of case-insensitive substring matches of text across text fields.
    """
    clauses = build_predicates(Pattern(field=field, pattern=text) for field in fields)
    return or_(*clauses)


class ReportFilters(BaseModel):
    """
    Filter specification supplied when a report is requested.

    Stored verbatim on the report record.
    """
    districts: List[str] = Field(default_factory=list)
    tiers: List[RiskTier] = Field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    conditions: List[FilterSpec] = Field(default_factory=list)

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def check_date_order(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from is after date_to")
        return self

    def to_specs(self) -> List[FilterSpec]:
        specs: List[FilterSpec] = []
        if self.districts:
            specs.append(InSet(field="district", values=list(self.districts)))
        if self.tiers:
            specs.append(InSet(field="tier", values=[tier.value for tier in self.tiers]))
        if self.date_from is not None or self.date_to is not None:
            specs.append(Range(field="last_updated", low=self.date_from, high=self.date_to))
        specs.extend(self.conditions)
        return [validate_spec(spec) for spec in specs]

    @classmethod
    def parse(cls, raw: Optional[Dict[str, Any]]) -> "ReportFilters":
        """
        Build filters from a request payload.

        Raises:
            InvalidFilterError: Malformed payload
        """
        try:
            filters = cls.model_validate(raw or {})
        except ValidationError as e:
            raise InvalidFilterError(f"Malformed report filters: {e.errors()[0]['msg']}") from e
        filters.to_specs()
        return filters
