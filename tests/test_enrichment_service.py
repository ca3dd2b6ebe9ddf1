"""Tests for barcode enrichment with mocked provider responses."""

import httpx
import pytest

from app.shared.database.models import BarcodeEnrichment
from app.shared.services.enrichment_service import BarcodeEnrichmentService


OFF_PRODUCT = {
    "status": 1,
    "product": {
        "product_name": "Oat Milk",
        "brands": "Oatly, Oatly AB",
        "categories": "Beverages, Plant-based foods, Plant milks",
        "image_url": "https://images.openfoodfacts.org/oat.jpg",
        "image_small_url": "https://images.openfoodfacts.org/oat_small.jpg",
        "nutriments": {"energy-kcal_100g": 46},
        "allergens_tags": ["en:gluten"],
        "unrelated_field": "dropped",
    },
}

UPC_ITEM = {
    "items": [{
        "title": "USB Cable",
        "brand": "Anker",
        "description": "Braided cable",
        "category": "Electronics > Cables > USB Cables",
        "images": ["https://cdn.example.com/cable.jpg", ""],
        "color": "black",
        "ean": "0848061012345",
    }]
}


class ProviderStub:
    """Answers Open Food Facts and UPC requests from canned payloads"""

    def __init__(self, off=None, upc=None, off_status=200):
        self.off = off
        self.upc = upc
        self.off_status = off_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.host)
        if "openfoodfacts" in request.url.host:
            if self.off is None:
                return httpx.Response(404)
            return httpx.Response(self.off_status, json=self.off)
        if self.upc is None:
            return httpx.Response(200, json={"items": []})
        return httpx.Response(200, json=self.upc)


def make_service(stub: ProviderStub) -> BarcodeEnrichmentService:
    return BarcodeEnrichmentService(transport=httpx.MockTransport(stub))


@pytest.mark.asyncio
async def test_open_food_facts_result_is_normalised_and_cached(db, owner):
    tenant, _ = owner
    stub = ProviderStub(off=OFF_PRODUCT)
    service = make_service(stub)

    result = await service.enrich("7394376616037", tenant.id, db)
    db.commit()

    assert result["source"] == "open_food_facts"
    assert result["name"] == "Oat Milk"
    assert result["brand"] == "Oatly"
    assert result["categoryPath"] == ["Beverages", "Plant-based foods", "Plant milks"]
    assert result["imageThumbnailUrl"] == "https://images.openfoodfacts.org/oat_small.jpg"
    assert "unrelated_field" not in result["metadata"]
    assert result["metadata"]["allergens_tags"] == ["en:gluten"]

    cached = db.query(BarcodeEnrichment).filter_by(barcode="7394376616037").one()
    assert cached.source == "open_food_facts"
    assert cached.payload["name"] == "Oat Milk"
    assert stub.requests == ["world.openfoodfacts.org"]


@pytest.mark.asyncio
async def test_falls_back_to_upc_database(db, owner):
    tenant, _ = owner
    stub = ProviderStub(upc=UPC_ITEM)

    result = await make_service(stub).enrich("0848061012345", tenant.id, db)

    assert result["source"] == "upc_database"
    assert result["name"] == "USB Cable"
    assert result["categoryPath"] == ["Electronics", "Cables", "USB Cables"]
    assert result["imageUrl"] == "https://cdn.example.com/cable.jpg"
    assert result["metadata"]["images"] == ["https://cdn.example.com/cable.jpg"]
    assert result["metadata"]["specifications"] == {"color": "black"}
    assert len(stub.requests) == 2


@pytest.mark.asyncio
async def test_unknown_barcode_returns_fallback_without_caching(db, owner):
    tenant, _ = owner

    result = await make_service(ProviderStub()).enrich("0000000000000", tenant.id, db)
    db.commit()

    assert result["source"] == "fallback"
    assert result["name"] == "Unknown Product (0000000000000)"
    assert result["categoryPath"] == ["Uncategorized"]
    assert db.query(BarcodeEnrichment).count() == 0


@pytest.mark.asyncio
async def test_provider_errors_are_not_raised(db, owner):
    tenant, _ = owner
    stub = ProviderStub(off={"status": 0}, off_status=503, upc=UPC_ITEM)

    result = await make_service(stub).enrich("0848061012345", tenant.id, db)

    assert result["source"] == "upc_database"


@pytest.mark.asyncio
async def test_malformed_payload_moves_on_to_next_provider(db, owner):
    tenant, _ = owner
    stub = ProviderStub(off=["not", "an", "object"], upc=UPC_ITEM)

    result = await make_service(stub).enrich("0848061012345", tenant.id, db)

    assert result["source"] == "upc_database"


@pytest.mark.asyncio
@pytest.mark.parametrize("upc", [["oops"], {"items": "oops"}, {"items": [None]}])
async def test_malformed_payloads_end_in_fallback(db, owner, upc):
    tenant, _ = owner
    stub = ProviderStub(off={"status": 1, "product": "oops"}, upc=upc)

    result = await make_service(stub).enrich("0000000000017", tenant.id, db)

    assert result["source"] == "fallback"
    assert result["name"] == "Unknown Product (0000000000017)"


@pytest.mark.asyncio
async def test_memory_cache_avoids_second_request(db, owner):
    tenant, _ = owner
    stub = ProviderStub(off=OFF_PRODUCT)
    service = make_service(stub)

    await service.enrich("7394376616037", tenant.id, db)
    await service.enrich("7394376616037", tenant.id, db)

    assert len(stub.requests) == 1
    assert service.stats()["cacheHits"] == 1
    assert service.stats()["cacheMisses"] == 1


@pytest.mark.asyncio
async def test_cache_table_is_read_and_counted(db, owner, cached_enrichment):
    tenant, _ = owner
    cached_enrichment("5000112637922", {"name": "Cola", "source": "open_food_facts", "categoryPath": ["Sodas"]})
    stub = ProviderStub()

    result = await make_service(stub).enrich("5000112637922", tenant.id, db)
    db.commit()

    assert result["name"] == "Cola"
    assert stub.requests == []
    assert db.query(BarcodeEnrichment).filter_by(barcode="5000112637922").one().fetch_count == 2


@pytest.mark.asyncio
async def test_rate_limited_provider_is_skipped(db, owner):
    tenant, _ = owner
    stub = ProviderStub(off=OFF_PRODUCT, upc=UPC_ITEM)
    service = make_service(stub)
    service.rate_limit_max = 1

    first = await service.enrich("1111111111111", tenant.id, db)
    second = await service.enrich("2222222222222", tenant.id, db)

    assert first["source"] == "open_food_facts"
    assert second["source"] == "upc_database"
    assert stub.requests == ["world.openfoodfacts.org", "api.upcitemdb.com"]


@pytest.mark.asyncio
async def test_category_suggestion_matches_tenant_category(db, owner, make_category):
    tenant, _ = owner
    category = make_category(tenant, "Plant Milks & Drinks", google_category_id="5723")

    result = await make_service(ProviderStub(off=OFF_PRODUCT)).enrich("7394376616037", tenant.id, db)

    suggestion = result["categorySuggestion"]
    assert suggestion["suggestedName"] == "Plant milks"
    assert suggestion["googleCategoryId"] == "5723"
    assert suggestion["existingTenantCategory"]["id"] == category.id


@pytest.mark.asyncio
async def test_category_suggestion_without_match(db, owner):
    tenant, _ = owner

    result = await make_service(ProviderStub(upc=UPC_ITEM)).enrich("0848061012345", tenant.id, db)

    assert result["categorySuggestion"] == {
        "suggestedName": "USB Cables",
        "categoryPath": ["Electronics", "Cables", "USB Cables"],
    }


def test_clear_cache_resets_rate_limits():
    service = BarcodeEnrichmentService()
    service._check_rate_limit("open_food_facts")
    service._memory_cache["123"] = (None, {})

    service.clear_cache()

    assert service.stats()["cacheSize"] == 0
    assert service.stats()["rateLimits"] == {}
