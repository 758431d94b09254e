"""
Search Router

Endpoints for unit search, filter-spec queries and suggestions.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.gridrisk.api.dependencies import get_db, get_user_id
from src.gridrisk.api.schemas import (
    AdvancedFilterRequest,
    FullTextSearchRequest,
    NotificationOut,
    ReportListItem,
    Suggestion,
    UnitBase,
    UnitDetail,
    UnitSearchResponse,
)
from src.gridrisk.models.risk import RiskTier
from src.gridrisk.search.service import SearchService, UnitSearchCriteria

router = APIRouter(prefix="/api/v1/search", tags=["search"])


@router.get("/units", response_model=UnitSearchResponse)
def search_units(
    query: Optional[str] = Query(None, description="Matches name, URN, service number or district"),
    district: List[str] = Query([], description="Filter by district (repeatable)"),
    tier: List[RiskTier] = Query([], description="Filter by tier (repeatable)"),
    risk_score_min: Optional[float] = Query(None, ge=0, le=100),
    risk_score_max: Optional[float] = Query(None, ge=0, le=100),
    arrears_min: Optional[float] = Query(None, ge=0),
    arrears_max: Optional[float] = Query(None, ge=0),
    disconnect_flag: Optional[bool] = Query(None),
    sort_by: str = Query("risk_score"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """
    Search units with filtering, sorting and pagination.
    """
    criteria = UnitSearchCriteria(
        query=query,
        districts=district,
        tiers=tier,
        risk_score_min=risk_score_min,
        risk_score_max=risk_score_max,
        arrears_min=arrears_min,
        arrears_max=arrears_max,
        disconnect_flag=disconnect_flag,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    result = SearchService(db).search_units(criteria)
    return UnitSearchResponse(
        units=[UnitDetail.model_validate(u) for u in result["units"]],
        pagination=result["pagination"],
    )


@router.post("/filter")
def advanced_filter(request: AdvancedFilterRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Apply tagged filter specifications and compute aggregations.
    """
    result = SearchService(db).advanced_filter(request.filters, request.aggregations)
    result["units"] = [UnitBase.model_validate(u).model_dump(mode="json") for u in result["units"]]
    return result


@router.get("/suggestions", response_model=List[Suggestion])
def suggestions(
    query: str = Query(..., min_length=1),
    type: str = Query("all", pattern="^(all|districts|units)$"),
    db: Session = Depends(get_db),
):
    return SearchService(db).suggestions(query, type)


@router.post("/full-text")
def full_text_search(
    request: FullTextSearchRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
) -> Dict[str, Any]:
    """
    Search units plus the caller's own reports and notifications by text.
    """
    found = SearchService(db).full_text_search(request.query, user_id, request.entity_types)
    serializers = {
        "units": UnitBase,
        "reports": ReportListItem,
        "notifications": NotificationOut,
    }
    return {
        name: [serializers[name].model_validate(item).model_dump(mode="json", by_alias=True) for item in items]
        for name, items in found.items()
    }
