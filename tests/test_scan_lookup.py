"""Tests for barcode lookups and scan result management."""

import pytest

from app.shared.database.models import ScanResult, ScanSession


SPREAD = {
    "name": "Hazelnut Spread",
    "brand": "Nutella",
    "categoryPath": ["Spreads", "Sweet spreads"],
    "imageUrl": "https://images.openfoodfacts.org/spread.jpg",
    "source": "open_food_facts",
}


@pytest.fixture
def scan(client, owner, auth_headers, enrichment_service):
    """An active session of the owner with the spread in the enrichment catalog"""
    tenant, user = owner
    headers = auth_headers(user)
    enrichment_service.catalog["0123"] = SPREAD
    session_id = client.post(
        "/api/v1/scan/start", json={"tenantId": tenant.id}, headers=headers
    ).json()["session"]["id"]
    return tenant, headers, session_id


def lookup(client, headers, session_id, barcode, **body):
    return client.post(
        f"/api/v1/scan/{session_id}/lookup-barcode",
        json={"barcode": barcode, **body},
        headers=headers
    )


def test_lookup_records_new_result(client, db, scan):
    tenant, headers, session_id = scan

    response = lookup(client, headers, session_id, "0123")

    assert response.status_code == 201
    body = response.json()
    assert body["result"]["status"] == "new"
    assert body["result"]["barcode"] == "0123"
    assert body["result"]["sku"] == "0123"
    assert body["result"]["rawPayload"]["barcode"] == "0123"
    assert body["enrichment"]["name"] == "Hazelnut Spread"
    assert body["duplicate"] is None

    db.expire_all()
    assert db.get(ScanSession, session_id).scanned_count == 1


def test_lookup_strips_barcode_whitespace(client, scan):
    _, headers, session_id = scan

    response = lookup(client, headers, session_id, "  0123 ")

    assert response.json()["result"]["barcode"] == "0123"


def test_same_barcode_twice_is_rejected(client, db, scan):
    _, headers, session_id = scan
    first = lookup(client, headers, session_id, "0123").json()["result"]

    response = lookup(client, headers, session_id, "0123")

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "duplicate_barcode"
    assert body["result"]["id"] == first["id"]
    db.expire_all()
    assert db.query(ScanResult).filter_by(session_id=session_id).count() == 1
    assert db.get(ScanSession, session_id).scanned_count == 1


def test_catalog_duplicate_is_recorded_with_warning(client, db, scan, make_item):
    tenant, headers, session_id = scan
    item = make_item(tenant, "0123")

    response = lookup(client, headers, session_id, "0123")

    assert response.status_code == 201
    body = response.json()
    assert body["result"]["status"] == "duplicate"
    assert body["result"]["duplicateOf"] == item.id
    assert body["duplicate"]["item"] == {"id": item.id, "name": item.name, "sku": "0123"}
    assert body["duplicate"]["warning"] == "Item already exists in inventory"
    db.expire_all()
    session = db.get(ScanSession, session_id)
    assert session.scanned_count == 1
    assert session.duplicate_count == 1


def test_trashed_item_is_not_a_duplicate(client, scan, make_item):
    tenant, headers, session_id = scan
    make_item(tenant, "0123", item_status="trashed")

    response = lookup(client, headers, session_id, "0123")

    assert response.json()["result"]["status"] == "new"
    assert response.json()["duplicate"] is None


def test_sku_overrides_barcode_for_catalog_identity(client, scan, make_item):
    tenant, headers, session_id = scan
    make_item(tenant, "SPREAD-400")

    response = lookup(client, headers, session_id, "0123", sku="SPREAD-400")

    assert response.json()["result"]["sku"] == "SPREAD-400"
    assert response.json()["result"]["status"] == "duplicate"


def test_enrichment_failure_does_not_fail_lookup(client, scan, enrichment_service):
    _, headers, session_id = scan
    enrichment_service.failing.add("9999")

    response = lookup(client, headers, session_id, "9999")

    assert response.status_code == 201
    assert response.json()["enrichment"] is None
    assert response.json()["result"]["enrichment"] is None


def test_lookup_on_frozen_tenant(client, db, scan):
    tenant, headers, session_id = scan
    tenant.subscription_status = "canceled"
    db.commit()

    response = lookup(client, headers, session_id, "0123")

    assert response.status_code == 403
    assert response.json()["error"] == "subscription_read_only"


def test_list_results_newest_first(client, scan):
    _, headers, session_id = scan
    for barcode in ["111", "222", "333"]:
        lookup(client, headers, session_id, barcode)

    response = client.get(f"/api/v1/scan/{session_id}/results", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    assert {r["barcode"] for r in body["results"]} == {"111", "222", "333"}


def test_delete_result_updates_counters(client, db, scan, make_item):
    tenant, headers, session_id = scan
    make_item(tenant, "0123")
    result_id = lookup(client, headers, session_id, "0123").json()["result"]["id"]

    response = client.delete(f"/api/v1/scan/{session_id}/results/{result_id}", headers=headers)

    assert response.status_code == 200
    assert response.json()["deleted"] == result_id
    db.expire_all()
    session = db.get(ScanSession, session_id)
    assert session.scanned_count == 0
    assert session.duplicate_count == 0
    assert db.get(ScanResult, result_id) is None


def test_delete_result_of_other_session(client, owner, scan):
    tenant, headers, session_id = scan
    other_id = client.post(
        "/api/v1/scan/start", json={"tenantId": tenant.id}, headers=headers
    ).json()["session"]["id"]
    result_id = lookup(client, headers, other_id, "0123").json()["result"]["id"]

    response = client.delete(f"/api/v1/scan/{session_id}/results/{result_id}", headers=headers)

    assert response.status_code == 404
    assert response.json()["error"] == "result_not_found"


def test_update_enrichment_merges_allowed_fields(client, db, scan):
    _, headers, session_id = scan
    result_id = lookup(client, headers, session_id, "0123").json()["result"]["id"]

    response = client.patch(
        f"/api/v1/scan/{session_id}/results/{result_id}/enrichment",
        json={"name": "Cocoa Spread", "categoryPath": ["Spreads"], "priceCents": 1},
        headers=headers
    )

    assert response.status_code == 200
    enrichment = response.json()["enrichment"]
    assert enrichment["name"] == "Cocoa Spread"
    assert enrichment["categoryPath"] == ["Spreads"]
    assert enrichment["brand"] == "Nutella"
    assert "priceCents" not in enrichment
    db.expire_all()
    assert db.get(ScanResult, result_id).enrichment["name"] == "Cocoa Spread"


def test_update_enrichment_rejects_unknown_fields(client, scan):
    _, headers, session_id = scan
    result_id = lookup(client, headers, session_id, "0123").json()["result"]["id"]

    response = client.patch(
        f"/api/v1/scan/{session_id}/results/{result_id}/enrichment",
        json={"priceCents": 100},
        headers=headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == "no_valid_updates"


def test_update_enrichment_requires_category_list(client, scan):
    _, headers, session_id = scan
    result_id = lookup(client, headers, session_id, "0123").json()["result"]["id"]

    response = client.patch(
        f"/api/v1/scan/{session_id}/results/{result_id}/enrichment",
        json={"categoryPath": "Spreads"},
        headers=headers
    )

    assert response.status_code == 400


def test_preview_cached_barcode(client, owner, auth_headers, cached_enrichment):
    _, user = owner
    cached_enrichment("3017620422003", {
        "name": "Hazelnut Spread",
        "imageUrl": "https://images.openfoodfacts.org/spread.jpg",
        "source": "open_food_facts",
        "metadata": {"nutriments": {"sugars_100g": 56.3}, "allergens_tags": ["en:milk"]},
    })

    response = client.get("/api/v1/scan/preview/3017620422003", headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is True
    product = body["product"]
    assert product["name"] == "Hazelnut Spread"
    assert product["popularity"] == 1
    assert product["dataAvailable"]["nutrition"] is True
    assert product["dataAvailable"]["images"] is True
    assert product["dataAvailable"]["allergens"] is True
    assert product["dataAvailable"]["environmental"] is False


def test_preview_unknown_barcode(client, owner, auth_headers):
    _, user = owner

    response = client.get("/api/v1/scan/preview/0000", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["found"] is False
    assert response.json()["product"] is None


def test_enrichment_cache_routes_require_platform_admin(client, owner, auth_headers):
    _, user = owner

    stats = client.get("/api/v1/scan/enrichment/cache-stats", headers=auth_headers(user))
    cleared = client.post("/api/v1/scan/enrichment/clear-cache", headers=auth_headers(user))

    assert stats.status_code == 403
    assert cleared.status_code == 403
    assert cleared.json()["error"] == "platform_admin_required"


def test_enrichment_cache_stats_and_clear(client, make_user, auth_headers, enrichment_service):
    headers = auth_headers(make_user(role="platform_admin"))
    enrichment_service._to_memory_cache("0123", SPREAD)
    enrichment_service._to_memory_cache("0456", SPREAD)

    stats = client.get("/api/v1/scan/enrichment/cache-stats", headers=headers)
    assert stats.status_code == 200
    assert stats.json()["stats"]["cacheSize"] == 2

    one = client.post("/api/v1/scan/enrichment/clear-cache", json={"barcode": "0123"}, headers=headers)
    assert one.json()["stats"]["cacheSize"] == 1

    everything = client.post("/api/v1/scan/enrichment/clear-cache", headers=headers)
    assert everything.status_code == 200
    assert everything.json()["stats"]["cacheSize"] == 0
