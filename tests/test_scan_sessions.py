"""Tests for scan session lifecycle endpoints."""

from datetime import datetime, timedelta

from app.shared.database.models import ScanResult, ScanSession


def start_session(client, headers, tenant_id, **body):
    return client.post("/api/v1/scan/start", json={"tenantId": tenant_id, **body}, headers=headers)


def test_start_session(client, owner, auth_headers):
    tenant, user = owner

    response = start_session(client, auth_headers(user), tenant.id, deviceType="camera", metadata={"shelf": "A1"})

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    session = body["session"]
    assert session["tenantId"] == tenant.id
    assert session["userId"] == user.id
    assert session["status"] == "active"
    assert session["deviceType"] == "camera"
    assert session["scannedCount"] == 0
    assert session["metadata"] == {"shelf": "A1"}


def test_start_session_with_template(client, owner, auth_headers, make_template):
    tenant, user = owner
    template = make_template(tenant, default_category="Groceries")

    response = start_session(client, auth_headers(user), tenant.id, templateId=template.id)

    assert response.status_code == 201
    assert response.json()["session"]["templateId"] == template.id


def test_start_session_unknown_template(client, owner, auth_headers, make_tenant, make_template):
    tenant, user = owner
    foreign_template = make_template(make_tenant())

    response = start_session(client, auth_headers(user), tenant.id, templateId=foreign_template.id)

    assert response.status_code == 404
    assert response.json()["error"] == "template_not_found"


def test_start_session_requires_tenant_access(client, owner, auth_headers, make_tenant):
    _, user = owner
    other = make_tenant()

    response = start_session(client, auth_headers(user), other.id)

    assert response.status_code == 403
    assert response.json()["success"] is False


def test_start_session_requires_barcode_scan_feature(client, make_tenant, make_user, auth_headers):
    tenant = make_tenant(subscription_tier="starter")
    user = make_user(tenant=tenant)

    response = start_session(client, auth_headers(user), tenant.id)

    assert response.status_code == 403
    assert response.json()["error"] == "feature_not_available"


def test_start_session_read_only_subscription(client, make_tenant, make_user, auth_headers):
    tenant = make_tenant(subscription_status="trial", trial_ends_at=datetime.utcnow() - timedelta(days=1))
    user = make_user(tenant=tenant)

    response = start_session(client, auth_headers(user), tenant.id)

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "subscription_read_only"
    assert body["maintenanceState"] == "freeze"


def test_start_session_rejects_unknown_device_type(client, owner, auth_headers):
    tenant, user = owner

    response = start_session(client, auth_headers(user), tenant.id, deviceType="drone")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"


def test_active_session_limit(client, db, owner, auth_headers):
    tenant, user = owner
    db.add_all([ScanSession(tenant_id=tenant.id, user_id=user.id, status="active") for _ in range(50)])
    db.commit()

    response = start_session(client, auth_headers(user), tenant.id)

    assert response.status_code == 429
    assert response.json()["error"] == "rate_limit_exceeded"
    assert response.json()["limit"] == 50


def test_completed_sessions_do_not_count_towards_limit(client, db, owner, auth_headers):
    tenant, user = owner
    db.add_all([ScanSession(tenant_id=tenant.id, user_id=user.id, status="completed") for _ in range(50)])
    db.commit()

    response = start_session(client, auth_headers(user), tenant.id)

    assert response.status_code == 201


def test_get_session_includes_results(client, owner, auth_headers):
    tenant, user = owner
    headers = auth_headers(user)
    session_id = start_session(client, headers, tenant.id).json()["session"]["id"]
    client.post(f"/api/v1/scan/{session_id}/lookup-barcode", json={"barcode": "111"}, headers=headers)

    response = client.get(f"/api/v1/scan/{session_id}", headers=headers)

    assert response.status_code == 200
    session = response.json()["session"]
    assert session["scannedCount"] == 1
    assert [r["barcode"] for r in session["results"]] == ["111"]


def test_get_unknown_session(client, owner, auth_headers):
    _, user = owner

    response = client.get("/api/v1/scan/does-not-exist", headers=auth_headers(user))

    assert response.status_code == 404
    assert response.json()["error"] == "session_not_found"


def test_other_tenant_cannot_read_session(client, owner, auth_headers, make_tenant, make_user):
    tenant, user = owner
    session_id = start_session(client, auth_headers(user), tenant.id).json()["session"]["id"]
    outsider = make_user(tenant=make_tenant())

    response = client.get(f"/api/v1/scan/{session_id}", headers=auth_headers(outsider))

    assert response.status_code == 403


def test_cancel_session(client, db, owner, auth_headers):
    tenant, user = owner
    headers = auth_headers(user)
    session_id = start_session(client, headers, tenant.id).json()["session"]["id"]

    response = client.delete(f"/api/v1/scan/{session_id}", headers=headers)

    assert response.status_code == 200
    assert response.json()["cancelled"] == session_id
    db.expire_all()
    session = db.get(ScanSession, session_id)
    assert session.status == "cancelled"
    assert session.completed_at is not None


def test_cancelled_session_rejects_lookups(client, owner, auth_headers):
    tenant, user = owner
    headers = auth_headers(user)
    session_id = start_session(client, headers, tenant.id).json()["session"]["id"]
    client.delete(f"/api/v1/scan/{session_id}", headers=headers)

    response = client.post(f"/api/v1/scan/{session_id}/lookup-barcode", json={"barcode": "111"}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"] == "session_not_active"


def test_my_sessions_newest_first(client, db, owner, auth_headers, make_user):
    tenant, user = owner
    colleague = make_user(tenant=tenant, tenant_role="MEMBER")
    now = datetime.utcnow()
    db.add_all([
        ScanSession(id="older", tenant_id=tenant.id, user_id=user.id, started_at=now - timedelta(hours=2)),
        ScanSession(id="newer", tenant_id=tenant.id, user_id=user.id, started_at=now - timedelta(hours=1)),
        ScanSession(id="theirs", tenant_id=tenant.id, user_id=colleague.id, started_at=now),
    ])
    db.commit()

    response = client.get("/api/v1/scan/my-sessions", params={"tenantId": tenant.id}, headers=auth_headers(user))

    assert response.status_code == 200
    assert [s["id"] for s in response.json()["sessions"]] == ["newer", "older"]


def test_cleanup_my_sessions(client, db, owner, auth_headers, make_user):
    tenant, user = owner
    colleague = make_user(tenant=tenant, tenant_role="MEMBER")
    db.add_all([
        ScanSession(id="mine-1", tenant_id=tenant.id, user_id=user.id),
        ScanSession(id="mine-2", tenant_id=tenant.id, user_id=user.id),
        ScanSession(id="mine-done", tenant_id=tenant.id, user_id=user.id, status="completed"),
        ScanSession(id="theirs", tenant_id=tenant.id, user_id=colleague.id),
    ])
    db.commit()

    response = client.post("/api/v1/scan/cleanup-my-sessions", json={"tenantId": tenant.id}, headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["cleaned"] == 2
    db.expire_all()
    assert db.get(ScanSession, "mine-1").status == "cancelled"
    assert db.get(ScanSession, "mine-done").status == "completed"
    assert db.get(ScanSession, "theirs").status == "active"


def test_cleanup_idle_sessions_requires_platform_admin(client, owner, auth_headers):
    _, user = owner

    response = client.post("/api/v1/scan/cleanup-idle-sessions", headers=auth_headers(user))

    assert response.status_code == 403
    assert response.json()["error"] == "platform_admin_required"


def test_cleanup_idle_sessions(client, db, owner, auth_headers, make_user):
    tenant, user = owner
    admin = make_user(role="platform_admin")
    now = datetime.utcnow()
    db.add_all([
        ScanSession(id="idle", tenant_id=tenant.id, user_id=user.id, started_at=now - timedelta(hours=3)),
        ScanSession(id="busy", tenant_id=tenant.id, user_id=user.id, started_at=now - timedelta(hours=3)),
        ScanSession(id="fresh", tenant_id=tenant.id, user_id=user.id, started_at=now - timedelta(minutes=10)),
    ])
    db.flush()
    db.add(ScanResult(
        tenant_id=tenant.id, session_id="busy", barcode="123",
        created_at=now - timedelta(minutes=5), updated_at=now - timedelta(minutes=5)
    ))
    db.commit()

    response = client.post("/api/v1/scan/cleanup-idle-sessions", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["cleaned"] == 1
    assert response.json()["excluded"] == 1
    db.expire_all()
    assert db.get(ScanSession, "idle").status == "cancelled"
    assert db.get(ScanSession, "busy").status == "active"
    assert db.get(ScanSession, "fresh").status == "active"
