"""Shared fixtures: in-memory SQLite database, API client and factories."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.database import Base, get_db
from app.core.auth.service import AuthService
from app.main import app
from app.shared.database.models import (
    BarcodeEnrichment, InventoryItem, ScanTemplate, Tenant, TenantCategory, User, UserTenant
)
from app.shared.services.enrichment_service import BarcodeEnrichmentService, get_enrichment_service
from app.shared.services.storage_service import get_storage_service

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeEnrichmentService(BarcodeEnrichmentService):
    """Serves enrichment from an in-memory catalog instead of external providers"""

    def __init__(self):
        super().__init__()
        self.catalog = {}
        self.failing = set()
        self.calls = []

    async def enrich(self, barcode, tenant_id, db):
        self.calls.append(barcode)
        if barcode in self.failing:
            raise RuntimeError("provider unavailable")
        return self.catalog.get(barcode)


class FakeStorageService:
    configured = True

    def __init__(self):
        self.uploads = []
        self.deleted = []

    def upload_bytes(self, content, folder, filename, content_type=None):
        self.uploads.append({"folder": folder, "filename": filename, "size": len(content), "content_type": content_type})
        return f"https://res.cloudinary.com/demo/image/upload/v1/storefront/{folder}/{filename}"

    def delete_by_url(self, url):
        self.deleted.append(url)
        return True


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def enrichment_service():
    return FakeEnrichmentService()


@pytest.fixture
def storage_service():
    return FakeStorageService()


@pytest.fixture
def client(db, enrichment_service, storage_service):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_enrichment_service] = lambda: enrichment_service
    app.dependency_overrides[get_storage_service] = lambda: storage_service

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_tenant(db):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        defaults = {
            "name": f"Store {counter['n']}",
            "slug": f"store-{counter['n']}",
            "subscription_tier": "professional",
            "subscription_status": "active",
        }
        defaults.update(fields)
        tenant = Tenant(**defaults)
        db.add(tenant)
        db.commit()
        db.refresh(tenant)
        return tenant

    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(tenant=None, tenant_role="OWNER", role="user", password="secret123", **fields):
        counter["n"] += 1
        user = User(
            email=fields.pop("email", f"user{counter['n']}@example.com"),
            password_hash=AuthService.get_password_hash(password),
            role=role,
            is_active=fields.pop("is_active", True),
            **fields
        )
        db.add(user)
        db.flush()
        if tenant is not None:
            db.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=tenant_role))
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = AuthService.create_access_token(data={"user_id": user.id, "email": user.email, "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_template(db):
    def _make(tenant, **fields):
        defaults = {"name": "Default", "default_currency": "USD", "default_visibility": "private"}
        defaults.update(fields)
        template = ScanTemplate(tenant_id=tenant.id, **defaults)
        db.add(template)
        db.commit()
        db.refresh(template)
        return template

    return _make


@pytest.fixture
def make_item(db):
    def _make(tenant, sku, **fields):
        defaults = {"name": f"Item {sku}", "title": f"Item {sku}", "item_status": "active"}
        defaults.update(fields)
        item = InventoryItem(tenant_id=tenant.id, sku=sku, **defaults)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture
def make_category(db):
    def _make(tenant, name, google_category_id=None):
        category = TenantCategory(tenant_id=tenant.id, name=name, google_category_id=google_category_id)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


@pytest.fixture
def cached_enrichment(db):
    def _make(barcode, payload, **fields):
        row = BarcodeEnrichment(
            barcode=barcode,
            name=payload.get("name"),
            brand=payload.get("brand"),
            image_url=payload.get("imageUrl"),
            source=payload.get("source", "open_food_facts"),
            meta=payload.get("metadata"),
            payload=payload,
            **fields
        )
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def owner(make_tenant, make_user):
    """A professional-tier tenant with its owner"""
    tenant = make_tenant()
    user = make_user(tenant=tenant)
    return tenant, user


def hours_ago(hours: float) -> datetime:
    return datetime.utcnow() - timedelta(hours=hours)
