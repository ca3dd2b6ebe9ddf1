# app/modules/scan/router.py
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional

from app.config.database import get_db
from app.core.auth.dependencies import get_current_user, get_platform_admin
from app.shared.database.models import User
from app.shared.schemas.common import ErrorResponse
from app.shared.services.enrichment_service import BarcodeEnrichmentService, get_enrichment_service
from .service import ScanService
from .schemas import (
    AnalyticsResponse, CancelResponse, CleanupResponse, CommitRequest, CommitResponse,
    DeleteResultResponse, EnrichmentCacheClearRequest, EnrichmentCacheStatsResponse,
    EnrichmentUpdateResponse, LookupBarcodeRequest, LookupResponse,
    PreviewResponse, ResultListResponse, SessionDetailResponse, SessionListResponse,
    SessionResponse, StartSessionRequest, TenantScopedRequest
)

router = APIRouter()

ERROR_RESPONSES = {
    403: {"model": ErrorResponse, "description": "No tenant access or read-only subscription"},
    404: {"model": ErrorResponse, "description": "Session or result not found"},
}

# Static paths are registered before /{session_id} so they are not captured by it

@router.post("/start", response_model=SessionResponse, status_code=201, responses={
    **ERROR_RESPONSES,
    429: {"model": ErrorResponse, "description": "Too many active sessions for the tenant"},
})
async def start_session(
    session_data: StartSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Start a barcode scan session

    **Requirements:**
    - Access to the tenant
    - Writable subscription with the `barcode_scan` feature
    - Fewer than 50 active sessions in the tenant

    **Body:**
    ```json
        {
            "tenantId": "tid-1a2b3c4d5e6f",
            "templateId": null,
            "deviceType": "camera"
        }
    ```
    """
    service = ScanService(db)
    return await service.start_session(session_data, current_user)

@router.get("/my-sessions", response_model=SessionListResponse)
async def get_my_sessions(
    tenant_id: str = Query(..., alias="tenantId", description="Tenant to list sessions for"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Newest sessions started by the current user in a tenant"""
    service = ScanService(db)
    return await service.my_sessions(tenant_id, current_user)

@router.post("/cleanup-my-sessions", response_model=CleanupResponse)
async def cleanup_my_sessions(
    request_data: TenantScopedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Cancel every active session of the current user in a tenant"""
    service = ScanService(db)
    return await service.cleanup_my_sessions(request_data.tenant_id, current_user)

@router.post("/cleanup-idle-sessions", response_model=CleanupResponse)
async def cleanup_idle_sessions(
    current_user: User = Depends(get_platform_admin),
    db: Session = Depends(get_db)
):
    """
    Cancel idle sessions across all tenants

    A session is idle when it started over an hour ago and no barcode was
    recorded in the last hour. Also run by `scripts/cleanup_idle_sessions.py`.
    """
    service = ScanService(db)
    return await service.cleanup_idle_sessions()

@router.get("/preview/{barcode}", response_model=PreviewResponse)
async def preview_barcode(
    barcode: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    enrichment_service: BarcodeEnrichmentService = Depends(get_enrichment_service)
):
    """Cached product data for a barcode and which sections are available"""
    service = ScanService(db, enrichment_service)
    return await service.preview_barcode(barcode)

@router.get("/enrichment/cache-stats", response_model=EnrichmentCacheStatsResponse)
async def get_enrichment_cache_stats(
    current_user: User = Depends(get_platform_admin),
    db: Session = Depends(get_db),
    enrichment_service: BarcodeEnrichmentService = Depends(get_enrichment_service)
):
    """
    Enrichment memory cache and provider budget (platform admin)

    **Includes:**
    - Cache size, hits, misses and hit rate
    - Requests used per provider in the current rate window
    """
    service = ScanService(db, enrichment_service)
    return await service.enrichment_cache_stats()

@router.post("/enrichment/clear-cache", response_model=EnrichmentCacheStatsResponse)
async def clear_enrichment_cache(
    request_data: Optional[EnrichmentCacheClearRequest] = None,
    current_user: User = Depends(get_platform_admin),
    db: Session = Depends(get_db),
    enrichment_service: BarcodeEnrichmentService = Depends(get_enrichment_service)
):
    """
    Evict one barcode, or the whole memory cache and provider budgets (platform admin)

    The database cache table is left untouched.
    """
    service = ScanService(db, enrichment_service)
    return await service.clear_enrichment_cache(request_data.barcode if request_data else None)

@router.get("/tenant/{tenant_id}/analytics", response_model=AnalyticsResponse)
async def get_tenant_analytics(
    tenant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Data quality of the items created by scanning

    **Includes:**
    - Items scanned in the last 7 and 30 days
    - Share of items with nutrition, images, environmental and allergen data
    - Most frequent brands
    """
    service = ScanService(db)
    return await service.tenant_analytics(tenant_id, current_user)

@router.get("/{session_id}", response_model=SessionDetailResponse, responses=ERROR_RESPONSES)
async def get_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Session with its template and the newest 100 results"""
    service = ScanService(db)
    return await service.get_session(session_id, current_user)

@router.delete("/{session_id}", response_model=CancelResponse, responses=ERROR_RESPONSES)
async def cancel_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Cancel a session; its results are kept but can no longer be committed"""
    service = ScanService(db)
    return await service.cancel_session(session_id, current_user)

@router.post("/{session_id}/lookup-barcode", response_model=LookupResponse, status_code=201, responses={
    **ERROR_RESPONSES,
    409: {"model": ErrorResponse, "description": "Barcode already scanned in this session"},
})
async def lookup_barcode(
    session_id: str,
    lookup_data: LookupBarcodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    enrichment_service: BarcodeEnrichmentService = Depends(get_enrichment_service)
):
    """
    Record a scanned barcode

    **Duplicates:**
    - Same barcode twice in one session: 409 `duplicate_barcode`
    - Barcode already in the catalog: recorded with `status=duplicate` and a warning

    Enrichment failures never fail the lookup; `enrichment` is then `null`.
    """
    service = ScanService(db, enrichment_service)
    return await service.lookup_barcode(session_id, lookup_data, current_user)

@router.get("/{session_id}/results", response_model=ResultListResponse, responses=ERROR_RESPONSES)
async def list_results(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All results of a session, newest first"""
    service = ScanService(db)
    return await service.list_results(session_id, current_user)

@router.delete("/{session_id}/results/{result_id}", response_model=DeleteResultResponse, responses=ERROR_RESPONSES)
async def delete_result(
    session_id: str,
    result_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = ScanService(db)
    return await service.delete_result(session_id, result_id, current_user)

@router.patch(
    "/{session_id}/results/{result_id}/enrichment",
    response_model=EnrichmentUpdateResponse,
    responses=ERROR_RESPONSES
)
async def update_result_enrichment(
    session_id: str,
    result_id: str,
    updates: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Correct enrichment data before commit

    Only `name`, `brand`, `description` and `categoryPath` are accepted.
    """
    service = ScanService(db)
    return await service.update_enrichment(session_id, result_id, updates, current_user)

@router.post("/{session_id}/commit", response_model=CommitResponse, responses={
    **ERROR_RESPONSES,
    422: {"model": ErrorResponse, "description": "Validation failed, nothing was written"},
})
async def commit_session(
    session_id: str,
    commit_data: Optional[CommitRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Commit a session into inventory

    **Process:**
    1. Validate every non-duplicate result (skipped with `skipValidation`)
    2. Create each item, or restore a trashed item with the same SKU
    3. Rebuild the item's photo gallery (up to 11 images)
    4. Mark the session completed

    Items that fail individually are listed in `failed`; the rest are committed.
    """
    service = ScanService(db)
    return await service.commit_session(session_id, commit_data or CommitRequest(), current_user)
