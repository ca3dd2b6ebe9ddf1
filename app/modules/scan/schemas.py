# app/modules/scan/schemas.py
from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from app.shared.schemas.common import BaseResponse, CamelModel

DeviceType = Literal["camera", "usb", "manual"]

# ===== REQUESTS =====

class StartSessionRequest(CamelModel):
    tenant_id: str = Field(..., min_length=1, description="Tenant the session belongs to")
    template_id: Optional[str] = Field(None, description="Scan template with fallback values")
    device_type: DeviceType = Field("manual", description="camera, usb or manual")
    metadata: Optional[Dict[str, Any]] = None

class LookupBarcodeRequest(CamelModel):
    barcode: str = Field(..., min_length=1, max_length=64)
    sku: Optional[str] = Field(None, max_length=128, description="Defaults to the barcode")

    @validator('barcode')
    def validate_barcode(cls, v):
        if not v.strip():
            raise ValueError('Barcode cannot be empty')
        return v.strip()

class CommitRequest(CamelModel):
    skip_validation: bool = False

class TenantScopedRequest(CamelModel):
    tenant_id: str = Field(..., min_length=1)

# ===== RESOURCES =====

class ScanTemplateInfo(CamelModel):
    id: str
    name: str
    default_category: Optional[str] = None
    default_price_cents: Optional[int] = None
    default_currency: str = "USD"
    default_visibility: str = "private"

class ScanResultInfo(CamelModel):
    id: str
    session_id: str
    tenant_id: str
    barcode: str
    sku: Optional[str] = None
    status: str
    enrichment: Optional[Dict[str, Any]] = None
    duplicate_of: Optional[str] = None
    raw_payload: Optional[Dict[str, Any]] = None
    created_at: datetime

class ScanSessionInfo(CamelModel):
    id: str
    tenant_id: str
    user_id: Optional[str] = None
    template_id: Optional[str] = None
    status: str
    device_type: Optional[str] = None
    scanned_count: int = 0
    committed_count: int = 0
    duplicate_count: int = 0
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    started_at: datetime
    completed_at: Optional[datetime] = None

class ScanSessionDetail(ScanSessionInfo):
    template: Optional[ScanTemplateInfo] = None
    results: List[ScanResultInfo] = []

class DuplicateItemInfo(CamelModel):
    id: str
    name: str
    sku: str

class DuplicateWarning(CamelModel):
    item: DuplicateItemInfo
    warning: str = "Item already exists in inventory"

class ValidationIssue(CamelModel):
    result_id: str
    barcode: str
    field: str
    message: str

class CommitFailure(CamelModel):
    result_id: str
    barcode: str
    error: str

# ===== RESPONSES =====

class SessionResponse(BaseResponse):
    session: ScanSessionInfo

class SessionDetailResponse(BaseResponse):
    session: ScanSessionDetail

class SessionListResponse(BaseResponse):
    sessions: List[ScanSessionInfo]

class CancelResponse(BaseResponse):
    cancelled: str

class CleanupResponse(BaseResponse):
    cleaned: int
    excluded: Optional[int] = None

class LookupResponse(BaseResponse):
    result: ScanResultInfo
    enrichment: Optional[Dict[str, Any]] = None
    duplicate: Optional[DuplicateWarning] = None

class ResultListResponse(BaseResponse):
    results: List[ScanResultInfo]
    count: int

class DeleteResultResponse(BaseResponse):
    deleted: str

class EnrichmentUpdateResponse(BaseResponse):
    enrichment: Dict[str, Any]

class CommitResponse(BaseResponse):
    committed: int
    item_ids: List[str]
    restored: List[str] = []
    failed: List[CommitFailure] = []

class PreviewResponse(BaseResponse):
    found: bool
    product: Optional[Dict[str, Any]] = None

class AnalyticsResponse(BaseResponse):
    analytics: Dict[str, Any]

class EnrichmentCacheStatsResponse(BaseResponse):
    stats: Dict[str, Any]

class EnrichmentCacheClearRequest(CamelModel):
    barcode: Optional[str] = Field(None, description="Only evict this barcode; omit to clear everything")
