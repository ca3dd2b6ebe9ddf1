# app/modules/scan/service.py
from typing import Any, Dict, Optional
from datetime import datetime, timedelta
from collections import Counter
import logging
import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core import metrics
from app.core.auth.dependencies import get_tenant_or_404, verify_tenant_access
from app.core.errors import (
    BusinessRuleViolation, Conflict, NotFound, RateLimitExceeded, ValidationError
)
from app.core.subscription import require_tier_feature, require_writable_subscription
from app.shared.database.models import ScanResult, ScanSession, User
from app.shared.services.enrichment_service import BarcodeEnrichmentService
from .commit import CommitPipeline, validate_results
from .metadata import extract_product_metadata
from .repository import ScanRepository
from .schemas import (
    AnalyticsResponse, CancelResponse, CleanupResponse, CommitFailure, CommitRequest,
    CommitResponse, DeleteResultResponse, DuplicateItemInfo, DuplicateWarning,
    EnrichmentCacheStatsResponse, EnrichmentUpdateResponse, LookupBarcodeRequest, LookupResponse, PreviewResponse,
    ResultListResponse, ScanResultInfo, ScanSessionDetail, ScanSessionInfo,
    SessionDetailResponse, SessionListResponse, SessionResponse, StartSessionRequest
)

logger = logging.getLogger(__name__)

EDITABLE_ENRICHMENT_FIELDS = ["name", "brand", "description", "categoryPath"]


def cleanup_idle_sessions(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Cancel sessions idle for longer than the configured timeout

    A session is idle when it started before the cutoff and no result was
    recorded since the cutoff. Shared by the admin endpoint and the cron script.
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=settings.scan_idle_timeout_minutes)

    cleaned, excluded = ScanRepository(db).cancel_idle_sessions(cutoff)
    db.commit()

    if cleaned:
        metrics.scan_sessions_cancelled_total.labels(reason="idle").inc(cleaned)
    logger.info(f"🧹 Idle cleanup closed {cleaned} sessions (excluded {excluded} with recent activity)")
    return {"cleaned": cleaned, "excluded": excluded}


class ScanService:
    def __init__(self, db: Session, enrichment_service: Optional[BarcodeEnrichmentService] = None):
        self.db = db
        self.repository = ScanRepository(db)
        self.enrichment_service = enrichment_service

    # ==================== HELPERS ====================

    def _get_session(self, session_id: str, current_user: User) -> ScanSession:
        session = self.repository.get_session(session_id)
        if not session:
            raise NotFound(f"Scan session {session_id} not found", error="session_not_found")
        verify_tenant_access(current_user, session.tenant_id)
        return session

    def _get_active_session(self, session_id: str, current_user: User) -> ScanSession:
        session = self._get_session(session_id, current_user)
        if not session.is_active:
            raise ValidationError(
                f"Scan session is {session.status}",
                error="session_not_active"
            )
        return session

    def _require_writable(self, tenant_id: str) -> None:
        require_writable_subscription(get_tenant_or_404(self.db, tenant_id))

    def _get_result(self, session: ScanSession, result_id: str) -> ScanResult:
        result = self.repository.get_result_by_id(result_id)
        if not result or result.session_id != session.id:
            raise NotFound(f"Scan result {result_id} not found", error="result_not_found")
        return result

    # ==================== SESSIONS ====================

    async def start_session(self, data: StartSessionRequest, current_user: User) -> SessionResponse:
        verify_tenant_access(current_user, data.tenant_id)
        tenant = get_tenant_or_404(self.db, data.tenant_id)
        require_writable_subscription(tenant)
        require_tier_feature(tenant, "barcode_scan")

        if data.template_id and not self.repository.get_template(data.template_id, tenant.id):
            raise NotFound(f"Scan template {data.template_id} not found", error="template_not_found")

        active = self.repository.count_active_sessions(tenant.id)
        if active >= settings.scan_max_active_sessions:
            logger.warning(f"⚠️ Tenant {tenant.id} reached {active} active scan sessions")
            raise RateLimitExceeded(
                "Too many active scan sessions",
                extra={"limit": settings.scan_max_active_sessions}
            )

        session = self.repository.create_session(
            tenant_id=tenant.id,
            user_id=current_user.id,
            template_id=data.template_id,
            device_type=data.device_type,
            metadata=data.metadata
        )
        self.db.commit()
        self.db.refresh(session)

        metrics.scan_sessions_started_total.labels(tenant=tenant.id, device_type=data.device_type).inc()
        logger.info(f"📷 Scan session {session.id} started for tenant {tenant.id} ({data.device_type})")

        return SessionResponse(
            message="Scan session started",
            session=ScanSessionInfo.model_validate(session)
        )

    async def get_session(self, session_id: str, current_user: User) -> SessionDetailResponse:
        session = self._get_session(session_id, current_user)
        detail = ScanSessionDetail.model_validate(session)
        detail.results = [
            ScanResultInfo.model_validate(result)
            for result in self.repository.get_results(session.id, settings.scan_session_results_limit)
        ]
        return SessionDetailResponse(session=detail)

    async def cancel_session(self, session_id: str, current_user: User) -> CancelResponse:
        session = self._get_session(session_id, current_user)

        if session.is_active:
            session.status = 'cancelled'
            session.completed_at = datetime.utcnow()
            self.db.commit()
            metrics.scan_sessions_cancelled_total.labels(reason="user").inc()
            logger.info(f"🛑 Scan session {session.id} cancelled by {current_user.id}")

        return CancelResponse(message="Scan session cancelled", cancelled=session.id)

    async def my_sessions(self, tenant_id: str, current_user: User) -> SessionListResponse:
        verify_tenant_access(current_user, tenant_id)
        sessions = self.repository.get_user_sessions(tenant_id, current_user.id, settings.scan_my_sessions_limit)
        return SessionListResponse(sessions=[ScanSessionInfo.model_validate(s) for s in sessions])

    async def cleanup_my_sessions(self, tenant_id: str, current_user: User) -> CleanupResponse:
        verify_tenant_access(current_user, tenant_id)
        cleaned = self.repository.cancel_user_sessions(tenant_id, current_user.id)
        self.db.commit()

        if cleaned:
            metrics.scan_sessions_cancelled_total.labels(reason="user_cleanup").inc(cleaned)
        logger.info(f"🧹 User {current_user.id} closed {cleaned} active sessions in tenant {tenant_id}")

        return CleanupResponse(message=f"Cleaned up {cleaned} active sessions", cleaned=cleaned)

    async def cleanup_idle_sessions(self, now: Optional[datetime] = None) -> CleanupResponse:
        outcome = cleanup_idle_sessions(self.db, now)
        return CleanupResponse(
            message=f"Cleaned up {outcome['cleaned']} idle sessions",
            cleaned=outcome["cleaned"],
            excluded=outcome["excluded"]
        )

    # ==================== RESULTS ====================

    async def lookup_barcode(
        self,
        session_id: str,
        data: LookupBarcodeRequest,
        current_user: User
    ) -> LookupResponse:
        """
        Record a barcode in an active session

        A barcode already present in the session is rejected (409). A barcode
        matching a live catalog item is still recorded, flagged as duplicate.
        """
        session = self._get_active_session(session_id, current_user)
        self._require_writable(session.tenant_id)

        existing = self.repository.get_result(session.id, data.barcode)
        if existing:
            self._raise_duplicate_barcode(session, existing)

        sku = data.sku or data.barcode
        catalog_item = self.repository.find_live_item(session.tenant_id, sku)

        enrichment = None
        if self.enrichment_service is not None:
            try:
                enrichment = await self.enrichment_service.enrich(data.barcode, session.tenant_id, self.db)
            except Exception as e:
                logger.error(f"❌ Enrichment failed for {data.barcode}: {e}")

        try:
            with self.db.begin_nested():
                result = self.repository.create_result(
                    tenant_id=session.tenant_id,
                    session_id=session.id,
                    barcode=data.barcode,
                    sku=sku,
                    status='duplicate' if catalog_item else 'new',
                    enrichment=enrichment,
                    duplicate_of=catalog_item.id if catalog_item else None,
                    raw_payload={
                        "barcode": data.barcode,
                        "sku": data.sku,
                        "timestamp": datetime.utcnow().isoformat(),
                    }
                )
        except IntegrityError:
            # concurrent lookup of the same barcode won the insert
            existing = self.repository.get_result(session.id, data.barcode)
            if existing:
                self._raise_duplicate_barcode(session, existing)
            raise

        session.scanned_count = (session.scanned_count or 0) + 1
        if catalog_item:
            session.duplicate_count = (session.duplicate_count or 0) + 1
        self.db.commit()
        self.db.refresh(result)

        metrics.scan_barcodes_total.labels(
            tenant=session.tenant_id,
            catalog_duplicate=str(bool(catalog_item)).lower()
        ).inc()

        duplicate = None
        if catalog_item:
            metrics.scan_barcode_duplicates_total.labels(tenant=session.tenant_id, kind="catalog").inc()
            duplicate = DuplicateWarning(item=DuplicateItemInfo.model_validate(catalog_item))
            logger.info(f"⚠️ Barcode {data.barcode} already in catalog as item {catalog_item.id}")

        return LookupResponse(
            result=ScanResultInfo.model_validate(result),
            enrichment=enrichment,
            duplicate=duplicate
        )

    def _raise_duplicate_barcode(self, session: ScanSession, existing: ScanResult) -> None:
        metrics.scan_barcode_duplicates_total.labels(tenant=session.tenant_id, kind="session").inc()
        raise Conflict(
            f"Barcode {existing.barcode} was already scanned in this session",
            error="duplicate_barcode",
            extra={"result": ScanResultInfo.model_validate(existing).model_dump(by_alias=True, mode="json")}
        )

    async def list_results(self, session_id: str, current_user: User) -> ResultListResponse:
        session = self._get_session(session_id, current_user)
        results = [ScanResultInfo.model_validate(r) for r in self.repository.get_results(session.id)]
        return ResultListResponse(results=results, count=len(results))

    async def delete_result(self, session_id: str, result_id: str, current_user: User) -> DeleteResultResponse:
        session = self._get_active_session(session_id, current_user)
        self._require_writable(session.tenant_id)
        result = self._get_result(session, result_id)

        if result.status == 'duplicate':
            session.duplicate_count = max(0, (session.duplicate_count or 0) - 1)
        session.scanned_count = max(0, (session.scanned_count or 0) - 1)
        self.db.delete(result)
        self.db.commit()

        logger.info(f"🗑️ Scan result {result_id} removed from session {session.id}")
        return DeleteResultResponse(deleted=result_id)

    async def update_enrichment(
        self,
        session_id: str,
        result_id: str,
        updates: Dict[str, Any],
        current_user: User
    ) -> EnrichmentUpdateResponse:
        allowed = {key: updates[key] for key in EDITABLE_ENRICHMENT_FIELDS if key in updates}
        if not allowed:
            raise ValidationError(
                f"Only {', '.join(EDITABLE_ENRICHMENT_FIELDS)} can be updated",
                error="no_valid_updates"
            )
        if "categoryPath" in allowed and not isinstance(allowed["categoryPath"], list):
            raise ValidationError("categoryPath must be a list of strings")

        session = self._get_active_session(session_id, current_user)
        self._require_writable(session.tenant_id)
        result = self._get_result(session, result_id)

        # reassign so the JSON column is flagged dirty
        result.enrichment = {**(result.enrichment or {}), **allowed}
        self.db.commit()

        return EnrichmentUpdateResponse(message="Enrichment updated", enrichment=result.enrichment)

    # ==================== COMMIT ====================

    async def commit_session(
        self,
        session_id: str,
        data: CommitRequest,
        current_user: User
    ) -> CommitResponse:
        """
        Turn the session's non-duplicate results into inventory items

        Validation failures reject the whole batch (422) without writing.
        Past validation, items are materialised best-effort and failures are
        itemised in the response; the session is completed either way.
        """
        started = time.time()
        session = self._get_active_session(session_id, current_user)
        self._require_writable(session.tenant_id)

        results = self.repository.get_committable_results(session.id)
        if not results:
            raise ValidationError("Session has no items to commit", error="no_items_to_commit")

        if not data.skip_validation:
            validation = validate_results(results, session.template)
            if not validation["valid"]:
                for error in validation["errors"]:
                    metrics.scan_validation_errors_total.labels(
                        tenant=session.tenant_id,
                        field=error["field"]
                    ).inc()
                raise BusinessRuleViolation(extra={"validation": validation})

        outcome = CommitPipeline(self.db, self.repository).run(session, results)

        session.status = 'completed'
        session.completed_at = datetime.utcnow()
        session.committed_count = len(outcome.item_ids)
        self.db.commit()

        metrics.scan_commit_duration_seconds.labels(tenant=session.tenant_id).observe(time.time() - started)
        metrics.scan_sessions_completed_total.labels(tenant=session.tenant_id).inc()
        logger.info(
            f"✅ Session {session.id} committed: {len(outcome.item_ids)} items, "
            f"{len(outcome.restored)} restored, {len(outcome.failed)} failed"
        )

        return CommitResponse(
            message=f"Committed {len(outcome.item_ids)} items",
            committed=len(outcome.item_ids),
            item_ids=outcome.item_ids,
            restored=outcome.restored,
            failed=[CommitFailure.model_validate(f) for f in outcome.failed]
        )

    # ==================== INSIGHTS ====================

    async def preview_barcode(self, barcode: str) -> PreviewResponse:
        """What the enrichment cache already knows about a barcode, without external calls"""
        cached = self.enrichment_service.preview(self.db, barcode) if self.enrichment_service else None
        if not cached:
            return PreviewResponse(
                found=False,
                message="Product not in cache. Will fetch from external APIs when scanned."
            )

        payload = cached.payload or {}
        product_metadata = extract_product_metadata(payload)
        raw = payload.get("metadata") or {}

        return PreviewResponse(
            found=True,
            product={
                "barcode": cached.barcode,
                "name": cached.name,
                "brand": cached.brand,
                "description": cached.description,
                "imageUrl": cached.image_url,
                "source": cached.source,
                "popularity": cached.fetch_count,
                "dataAvailable": {
                    "nutrition": product_metadata.nutrition is not None,
                    "images": bool(cached.image_url or raw.get("images")),
                    "allergens": bool(product_metadata.allergens),
                    "environmental": product_metadata.environmental is not None,
                    "specifications": bool(product_metadata.specifications),
                    "ingredients": product_metadata.ingredients is not None,
                },
            }
        )

    async def enrichment_cache_stats(self) -> EnrichmentCacheStatsResponse:
        return EnrichmentCacheStatsResponse(stats=self.enrichment_service.stats())

    async def clear_enrichment_cache(self, barcode: Optional[str] = None) -> EnrichmentCacheStatsResponse:
        self.enrichment_service.clear_cache(barcode)
        logger.info(f"🧹 Enrichment memory cache cleared ({barcode or 'all barcodes'})")
        return EnrichmentCacheStatsResponse(
            message="Enrichment cache cleared",
            stats=self.enrichment_service.stats()
        )

    async def tenant_analytics(self, tenant_id: str, current_user: User) -> AnalyticsResponse:
        verify_tenant_access(current_user, tenant_id)
        items = self.repository.get_scanned_items(tenant_id)
        now = datetime.utcnow()

        total = len(items)
        quality = Counter()
        for item in items:
            meta = item.meta or {}
            if (meta.get("nutrition") or {}).get("per_100g"):
                quality["withNutrition"] += 1
            if item.image_url:
                quality["withImages"] += 1
            if meta.get("environmental"):
                quality["withEnvironmental"] += 1
            if meta.get("allergens"):
                quality["withAllergens"] += 1

        def percentage(count: int) -> float:
            return round(count / total * 100, 1) if total else 0.0

        brands = Counter(item.brand for item in items if item.brand and item.brand != "Unknown")
        provider_hits = sum(
            1 for item in items
            if (item.meta or {}).get("source") in ("open_food_facts", "upc_database")
        )

        return AnalyticsResponse(analytics={
            "totalScanned": total,
            "recentScans": {
                "last7Days": sum(1 for item in items if item.created_at >= now - timedelta(days=7)),
                "last30Days": sum(1 for item in items if item.created_at >= now - timedelta(days=30)),
            },
            "dataQuality": {
                "withNutrition": quality["withNutrition"],
                "withImages": quality["withImages"],
                "withEnvironmental": quality["withEnvironmental"],
                "withAllergens": quality["withAllergens"],
                "nutritionPercentage": percentage(quality["withNutrition"]),
                "imagesPercentage": percentage(quality["withImages"]),
                "environmentalPercentage": percentage(quality["withEnvironmental"]),
                "allergensPercentage": percentage(quality["withAllergens"]),
            },
            "topBrands": [{"brand": brand, "count": count} for brand, count in brands.most_common(10)],
            "enrichedFromProviders": provider_hits,
        })
