# app/shared/services/enrichment_service.py
import httpx
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core import metrics
from app.shared.database.models import BarcodeEnrichment, TenantCategory

logger = logging.getLogger(__name__)

OPEN_FOOD_FACTS_FIELDS = [
    "nutriments", "nutriscore_grade", "nutrition_grades", "nova_group",
    "ecoscore_grade", "ecoscore_score", "packaging", "packaging_tags",
    "ingredients_text", "ingredients", "allergens", "allergens_tags", "traces_tags",
    "labels_tags", "quantity", "serving_size",
    "image_front_url", "image_ingredients_url", "image_nutrition_url",
    "image_packaging_url", "selected_images",
]


class BarcodeEnrichmentService:
    """
    Product data lookup for scanned barcodes

    Lookup order: in-process cache, `barcode_enrichments` table, then the
    external providers (Open Food Facts, UPC database) under an hourly
    per-provider request budget. Provider failures are logged and never
    raised; when nothing is found a fallback record is returned.
    """

    PROVIDERS = ("open_food_facts", "upc_database")

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport
        self.cache_ttl = timedelta(hours=settings.enrichment_cache_ttl_hours)
        self.rate_limit_window = timedelta(hours=1)
        self.rate_limit_max = settings.enrichment_rate_limit_per_hour
        self._memory_cache: Dict[str, Tuple[datetime, Dict[str, Any]]] = {}
        self._rate_limits: Dict[str, Dict[str, Any]] = {}
        self.cache_hits = 0
        self.cache_misses = 0

    # ==================== LOOKUP ====================

    async def enrich(self, barcode: str, tenant_id: str, db: Session) -> Optional[Dict[str, Any]]:
        """Enrichment dict for a barcode, with a tenant category suggestion attached"""
        result = self._from_memory_cache(barcode)
        if result is None:
            result = self._from_cache_table(db, barcode)
            if result is not None:
                self._to_memory_cache(barcode, result)

        if result is not None:
            self.cache_hits += 1
            metrics.enrichment_lookups_total.labels(source="cache").inc()
        else:
            self.cache_misses += 1
            result = await self._fetch_from_providers(barcode)
            if result is not None:
                self._to_memory_cache(barcode, result)
                self._store_cache_table(db, barcode, result)
                metrics.enrichment_lookups_total.labels(source=result["source"]).inc()
            else:
                logger.info(f"🔎 No provider data for barcode {barcode}, using fallback")
                metrics.enrichment_lookups_total.labels(source="fallback").inc()
                result = self.fallback(barcode)

        result = dict(result)
        suggestion = self.suggest_category(db, tenant_id, result.get("categoryPath") or [])
        if suggestion:
            result["categorySuggestion"] = suggestion
        return result

    async def _fetch_from_providers(self, barcode: str) -> Optional[Dict[str, Any]]:
        fetchers = {
            "open_food_facts": self._fetch_open_food_facts,
            "upc_database": self._fetch_upc_database,
        }
        async with httpx.AsyncClient(
            timeout=settings.enrichment_timeout_seconds,
            transport=self.transport
        ) as client:
            for provider in self.PROVIDERS:
                if not self._check_rate_limit(provider):
                    logger.warning(f"⏳ Rate limit reached for {provider}, skipping")
                    continue
                try:
                    result = await fetchers[provider](client, barcode)
                except (httpx.HTTPError, ValueError, AttributeError, TypeError, KeyError) as e:
                    logger.error(f"❌ {provider} lookup failed for {barcode}: {e}")
                    continue
                if result:
                    logger.info(f"✅ Barcode {barcode} enriched from {provider}")
                    return result
        return None

    async def _fetch_open_food_facts(self, client: httpx.AsyncClient, barcode: str) -> Optional[Dict[str, Any]]:
        response = await client.get(f"{settings.open_food_facts_url}/{barcode}.json")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"unexpected payload type {type(data).__name__}")
        product = data.get("product")
        if data.get("status") != 1 or not isinstance(product, dict):
            return None

        name = product.get("product_name") or product.get("generic_name")
        if not name:
            return None

        brands = [b.strip() for b in (product.get("brands") or "").split(",") if b.strip()]
        categories = [c.strip() for c in (product.get("categories") or "").split(",") if c.strip()]

        return {
            "name": name,
            "brand": brands[0] if brands else None,
            "description": product.get("generic_name") or None,
            "categoryPath": categories,
            "imageUrl": product.get("image_url") or product.get("image_front_url"),
            "imageThumbnailUrl": product.get("image_small_url") or product.get("image_front_small_url"),
            "metadata": {key: product[key] for key in OPEN_FOOD_FACTS_FIELDS if product.get(key) is not None},
            "source": "open_food_facts",
        }

    async def _fetch_upc_database(self, client: httpx.AsyncClient, barcode: str) -> Optional[Dict[str, Any]]:
        headers = {}
        if settings.upc_database_api_key:
            headers = {"user_key": settings.upc_database_api_key, "key_type": "3scale"}

        response = await client.get(settings.upc_database_url, params={"upc": barcode}, headers=headers)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"unexpected payload type {type(data).__name__}")
        items = data.get("items") or []
        if not items or not isinstance(items[0], dict):
            return None

        item = items[0]
        images = [url for url in item.get("images") or [] if url]
        category = item.get("category") or ""

        return {
            "name": item.get("title"),
            "brand": item.get("brand") or None,
            "description": item.get("description") or None,
            "categoryPath": [c.strip() for c in category.split(">") if c.strip()],
            "imageUrl": images[0] if images else None,
            "metadata": {
                "images": images,
                "specifications": {
                    key: item[key]
                    for key in ("model", "color", "size", "dimension", "weight")
                    if item.get(key)
                },
                "ean": item.get("ean"),
            },
            "source": "upc_database",
        }

    @staticmethod
    def fallback(barcode: str) -> Dict[str, Any]:
        return {
            "name": f"Unknown Product ({barcode})",
            "description": "No product information available for this barcode",
            "categoryPath": ["Uncategorized"],
            "source": "fallback",
            "metadata": {"barcode": barcode, "fallbackReason": "No data available"},
        }

    # ==================== CATEGORIES ====================

    def suggest_category(self, db: Session, tenant_id: str, category_path: List[str]) -> Optional[Dict[str, Any]]:
        """Match the most specific path segment against the tenant's categories"""
        if not category_path:
            return None

        category_name = category_path[-1]
        match = db.query(TenantCategory).filter(
            TenantCategory.tenant_id == tenant_id,
            TenantCategory.is_active.is_(True),
            func.lower(TenantCategory.name).contains(category_name.lower())
        ).first()

        suggestion = {"suggestedName": category_name, "categoryPath": category_path}
        if match:
            suggestion["googleCategoryId"] = match.google_category_id
            suggestion["existingTenantCategory"] = {
                "id": match.id,
                "name": match.name,
                "googleCategoryId": match.google_category_id,
            }
        return suggestion

    # ==================== CACHES ====================

    def _from_memory_cache(self, barcode: str) -> Optional[Dict[str, Any]]:
        entry = self._memory_cache.get(barcode)
        if not entry:
            return None
        expires_at, data = entry
        if datetime.utcnow() > expires_at:
            del self._memory_cache[barcode]
            return None
        return data

    def _to_memory_cache(self, barcode: str, data: Dict[str, Any]) -> None:
        self._memory_cache[barcode] = (datetime.utcnow() + self.cache_ttl, data)
        if len(self._memory_cache) > 1000:
            now = datetime.utcnow()
            for key in [k for k, (exp, _) in self._memory_cache.items() if exp < now]:
                del self._memory_cache[key]

    def _from_cache_table(self, db: Session, barcode: str) -> Optional[Dict[str, Any]]:
        cached = db.query(BarcodeEnrichment).filter(BarcodeEnrichment.barcode == barcode).first()
        if not cached:
            return None
        cached.fetch_count = (cached.fetch_count or 0) + 1
        cached.last_fetched_at = datetime.utcnow()
        db.flush()
        return cached.payload

    def _store_cache_table(self, db: Session, barcode: str, result: Dict[str, Any]) -> None:
        try:
            with db.begin_nested():
                db.add(BarcodeEnrichment(
                    barcode=barcode,
                    name=result.get("name"),
                    brand=result.get("brand"),
                    description=result.get("description"),
                    image_url=result.get("imageUrl"),
                    image_thumbnail_url=result.get("imageThumbnailUrl"),
                    source=result["source"],
                    meta=result.get("metadata"),
                    payload=result,
                ))
        except IntegrityError:
            # another request cached the same barcode first
            logger.info(f"Barcode {barcode} already cached")

    def preview(self, db: Session, barcode: str) -> Optional[BarcodeEnrichment]:
        return db.query(BarcodeEnrichment).filter(BarcodeEnrichment.barcode == barcode).first()

    def clear_cache(self, barcode: Optional[str] = None) -> None:
        if barcode:
            self._memory_cache.pop(barcode, None)
        else:
            self._memory_cache.clear()
            self._rate_limits.clear()

    # ==================== RATE LIMIT ====================

    def _check_rate_limit(self, provider: str) -> bool:
        now = datetime.utcnow()
        state = self._rate_limits.get(provider)

        if not state or now > state["reset_at"]:
            self._rate_limits[provider] = {"count": 1, "reset_at": now + self.rate_limit_window}
            return True

        if state["count"] >= self.rate_limit_max:
            return False

        state["count"] += 1
        return True

    def stats(self) -> Dict[str, Any]:
        total = self.cache_hits + self.cache_misses
        return {
            "cacheSize": len(self._memory_cache),
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "cacheHitRate": self.cache_hits / total if total else 0.0,
            "rateLimits": {
                provider: {"count": state["count"], "resetAt": state["reset_at"].isoformat()}
                for provider, state in self._rate_limits.items()
            },
        }


def get_enrichment_service(request: Request) -> BarcodeEnrichmentService:
    """Instance constructed in the application lifespan"""
    return request.app.state.enrichment_service
