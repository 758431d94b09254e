"""
Analysis Router

Endpoints for per-unit analysis and district or state trend prediction.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.gridrisk.analysis.trends import TrendPredictionService
from src.gridrisk.analysis.unit_analysis import UnitAnalysisService
from src.gridrisk.api.dependencies import get_db, get_text_client, get_user_id
from src.gridrisk.api.schemas import (
    StoredAnalysisOut,
    TrendPredictionOut,
    TrendPredictionRequest,
    UnitAnalysisOut,
    UnitAnalysisRequest,
)
from src.gridrisk.llm.client import TextGenerationClient

router = APIRouter(prefix="/api/v1/analysis", tags=["analysis"])


@router.post("/units/{unit_id}", response_model=UnitAnalysisOut)
def analyze_unit(
    unit_id: int,
    request: UnitAnalysisRequest,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    text_client: Optional[TextGenerationClient] = Depends(get_text_client),
):
    """
    Analyze one unit. The result is stored and returned.
    """
    result = UnitAnalysisService(db, client=text_client).analyze(unit_id, request.analysis_type, requested_by=user_id)
    return UnitAnalysisOut.model_validate(result)


@router.get("/units/{unit_id}/history", response_model=List[StoredAnalysisOut])
def analysis_history(
    unit_id: int,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return [StoredAnalysisOut.model_validate(a) for a in UnitAnalysisService(db).history(unit_id, limit)]


@router.post("/trends", response_model=TrendPredictionOut)
def predict_trends(
    request: TrendPredictionRequest,
    db: Session = Depends(get_db),
    text_client: Optional[TextGenerationClient] = Depends(get_text_client),
):
    """
    Forward-looking risk trends for a district or the whole state.
    """
    prediction = TrendPredictionService(db, client=text_client).predict(
        request.scope, request.district, request.timeframe
    )
    return TrendPredictionOut.model_validate(prediction)
