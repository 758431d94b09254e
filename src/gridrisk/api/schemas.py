"""
Pydantic Schemas for API Request/Response Models

These schemas define the JSON structure for API endpoints.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, date
from pydantic import BaseModel, Field

from src.gridrisk.analysis.trends import TrendScope
from src.gridrisk.analysis.unit_analysis import AnalysisType
from src.gridrisk.models.risk import ReportType, Severity


class ShapDriverOut(BaseModel):
    """Risk driver."""
    feature: str
    impact: float
    value: str

    class Config:
        from_attributes = True


class AlertOut(BaseModel):
    """Historical alert event."""
    alert_date: date = Field(..., serialization_alias="date")
    type: str
    severity: str
    message: Optional[str] = None

    class Config:
        from_attributes = True


class UnitBase(BaseModel):
    """Base unit schema."""
    id: int
    urn: str
    name: str
    district: str
    service_no: str
    risk_score: float = Field(..., ge=0, le=100)
    tier: str = Field(..., pattern="^(GREEN|AMBER|RED)$")
    arrears: Optional[float] = None
    disconnect_flag: bool
    peer_percentile: Optional[float] = None
    last_updated: datetime

    class Config:
        from_attributes = True


class UnitDetail(UnitBase):
    """Unit with consumption history, risk drivers and alerts."""
    kwh_consumption: Optional[List[float]] = None
    shap_drivers: List[ShapDriverOut] = Field(default_factory=list)
    alert_history: List[AlertOut] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UnitSearchResponse(BaseModel):
    units: List[UnitDetail]
    pagination: Pagination


class AdvancedFilterRequest(BaseModel):
    """Filter specifications tagged by 'op' plus optional aggregations."""
    filters: List[Dict[str, Any]] = Field(default_factory=list)
    aggregations: List[Dict[str, Any]] = Field(default_factory=list)


class FullTextSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    entity_types: List[str] = Field(default_factory=lambda: ["units"])


class Suggestion(BaseModel):
    text: str
    type: str
    category: str


class GenerateReportRequest(BaseModel):
    """Report generation request."""
    report_type: ReportType
    filters: Dict[str, Any] = Field(default_factory=dict)


class ReportListItem(BaseModel):
    """Report metadata without payload."""
    id: str
    report_type: str
    title: str
    description: Optional[str] = None
    status: str
    generated_by: Optional[str] = None
    created_at: datetime
    generated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    file_url: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class ReportDetail(ReportListItem):
    """Report with filters and payload (payload only when ready)."""
    filters: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None


class NotificationCreate(BaseModel):
    user_id: str
    type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    severity: Severity = Severity.MEDIUM
    unit_id: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UnitRef(BaseModel):
    name: str
    urn: str
    district: str

    class Config:
        from_attributes = True


class NotificationOut(BaseModel):
    id: int
    user_id: Optional[str] = None
    unit_id: Optional[int] = None
    type: str
    title: str
    message: str
    severity: str
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    read_at: Optional[datetime] = None
    sent_email: bool
    created_at: datetime
    unit: Optional[UnitRef] = None

    class Config:
        from_attributes = True


class RiskAlertScanResult(BaseModel):
    alerts_sent: int
    units_checked: int
    duplicates_skipped: int


class StoredFileOut(BaseModel):
    id: str
    user_id: str
    bucket_id: str
    file_path: str
    original_name: str
    file_size: int
    mime_type: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UnitAnalysisRequest(BaseModel):
    analysis_type: AnalysisType = AnalysisType.RISK_ASSESSMENT


class UnitAnalysisOut(BaseModel):
    analysis_id: int
    unit_id: int
    analysis_type: str
    analysis: str
    confidence_score: float
    source: str
    unit_context: Dict[str, Any]
    timestamp: datetime

    class Config:
        from_attributes = True


class StoredAnalysisOut(BaseModel):
    id: int
    unit_id: int
    analysis_type: str
    response: str
    confidence_score: float
    source: str
    requested_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TrendPredictionRequest(BaseModel):
    scope: TrendScope = TrendScope.DISTRICT
    district: Optional[str] = None
    timeframe: str = "3_months"


class TrendPredictionOut(BaseModel):
    prediction: str
    confidence_score: float
    source: str
    scope: str
    district: Optional[str] = None
    timeframe: str
    data_quality: Dict[str, float]
    trend_summary: Dict[str, Any]
    timestamp: datetime

    class Config:
        from_attributes = True


class ActivityCreate(BaseModel):
    action: str = Field(..., min_length=1, max_length=100)
    unit_id: Optional[int] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ActivityOut(BaseModel):
    id: int
    user_id: str
    unit_id: Optional[int] = None
    action: str
    description: Optional[str] = None
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    unit: Optional[UnitRef] = None

    class Config:
        from_attributes = True


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = "0.1.0"
    database: str = "connected"
    timestamp: datetime
