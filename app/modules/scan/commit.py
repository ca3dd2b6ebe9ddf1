# app/modules/scan/commit.py
"""
Materialisation of scan results into inventory items.

SKU is the catalog identity: a trashed item with the same (tenant, sku) is
restored in place instead of being shadowed by a new row. Every result runs
inside its own savepoint so one failing barcode never aborts the batch.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from app.core import metrics
from app.shared.database.models import InventoryItem, ScanResult, ScanSession, ScanTemplate
from .metadata import build_image_gallery, extract_product_metadata
from .repository import ScanRepository

logger = logging.getLogger(__name__)


@dataclass
class CommitOutcome:
    item_ids: List[str] = field(default_factory=list)
    restored: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)


def suggested_category_id(enrichment: Dict[str, Any]) -> Optional[str]:
    suggestion = enrichment.get("categorySuggestion") or {}
    if not isinstance(suggestion, dict):
        return None
    existing = suggestion.get("existingTenantCategory") or {}
    return existing.get("id")


def validate_results(results: List[ScanResult], template: Optional[ScanTemplate]) -> Dict[str, Any]:
    """Collect every missing-field error; an empty list means the batch may be committed"""
    default_category = template.default_category if template else None
    errors = []

    for result in results:
        enrichment = result.enrichment or {}

        if not enrichment.get("name") and not default_category:
            errors.append({
                "resultId": result.id,
                "barcode": result.barcode,
                "field": "name",
                "message": "Product name is required",
            })

        if not enrichment.get("categoryPath") and not suggested_category_id(enrichment) and not default_category:
            errors.append({
                "resultId": result.id,
                "barcode": result.barcode,
                "field": "category",
                "message": "Category is required",
            })

    return {"valid": not errors, "errors": errors}


class CommitPipeline:
    def __init__(self, db: Session, repository: Optional[ScanRepository] = None):
        self.db = db
        self.repository = repository or ScanRepository(db)

    def run(self, session: ScanSession, results: List[ScanResult]) -> CommitOutcome:
        outcome = CommitOutcome()

        for result in results:
            try:
                with self.db.begin_nested():
                    item, restored = self._materialize(session, result)
            except Exception as e:
                logger.error(f"❌ Commit failed for barcode {result.barcode} in session {session.id}: {e}")
                metrics.scan_commit_items_total.labels(tenant=session.tenant_id, outcome="failed").inc()
                outcome.failed.append({
                    "resultId": result.id,
                    "barcode": result.barcode,
                    "error": str(e),
                })
                continue

            outcome.item_ids.append(item.id)
            if restored:
                outcome.restored.append(item.id)
            metrics.scan_commit_items_total.labels(
                tenant=session.tenant_id,
                outcome="restored" if restored else "created"
            ).inc()

        return outcome

    def _materialize(self, session: ScanSession, result: ScanResult) -> Tuple[InventoryItem, bool]:
        enrichment = result.enrichment or {}
        template = session.template
        sku = result.sku or result.barcode

        product_metadata = extract_product_metadata(enrichment)
        gallery = build_image_gallery(enrichment)

        fields = self._item_fields(session, result, enrichment, template)
        fields["meta"] = {
            **product_metadata.to_json(),
            "scannedFrom": session.id,
            "barcode": result.barcode,
        }

        item = self.repository.find_trashed_item(session.tenant_id, sku)
        restored = item is not None
        if restored:
            for key, value in fields.items():
                setattr(item, key, value)
            item.item_status = 'active'
            logger.info(f"♻️ Restoring trashed item {item.id} for SKU {sku}")
        else:
            item = InventoryItem(tenant_id=session.tenant_id, sku=sku, item_status='active', **fields)
            self.db.add(item)
        self.db.flush()

        photos = self.repository.replace_photos(item, gallery)
        item.image_url = photos[0].url if photos else None
        item.missing_images = not photos
        self.db.flush()

        logger.info(f"✅ {'Restored' if restored else 'Created'} item {item.id} ({sku}) with {len(photos)} photos")
        return item, restored

    @staticmethod
    def _item_fields(
        session: ScanSession,
        result: ScanResult,
        enrichment: Dict[str, Any],
        template: Optional[ScanTemplate]
    ) -> Dict[str, Any]:
        name = enrichment.get("name") or f"Product {result.barcode}"
        price_cents = enrichment.get("priceCents") or (template.default_price_cents if template else None) or 0
        stock = enrichment.get("stock") or 0

        category_path = enrichment.get("categoryPath") or []
        if not category_path and template and template.default_category:
            category_path = [template.default_category]

        return {
            "name": name,
            "title": name,
            "brand": enrichment.get("brand") or "Unknown",
            "description": enrichment.get("description"),
            "price_cents": int(price_cents),
            "price": Decimal(int(price_cents)) / 100,
            "stock": stock,
            "currency": template.default_currency if template else "USD",
            "visibility": template.default_visibility if template else "private",
            "availability": "in_stock" if stock > 0 else "out_of_stock",
            "category_path": category_path,
            "tenant_category_id": suggested_category_id(enrichment),
            "source": "SCAN",
            "gtin": result.barcode,
            "enriched_at": datetime.utcnow() if enrichment.get("source") not in (None, "fallback") else None,
            "enriched_from_barcode": result.barcode,
        }
