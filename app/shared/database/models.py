# app/shared/database/models.py
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, JSON,
    Numeric, ForeignKey, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
import uuid

from app.config.database import Base

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def generate_id(prefix: str = "") -> str:
    """Opaque text primary key, optionally prefixed (tid-, sess-, ...)"""
    value = uuid.uuid4().hex
    return f"{prefix}-{value[:12]}" if prefix else value


# =====================================================
# TIMESTAMP MIXIN
# =====================================================
class TimestampMixin:
    """Adds created_at and updated_at"""
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# =====================================================
# TENANTS & USERS
# =====================================================

class Tenant(Base):
    """Merchant/store account - the multi-tenancy boundary"""
    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("tid"))
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True)

    # Subscription
    subscription_tier = Column(String(40), nullable=False, default='starter')
    subscription_status = Column(String(20), nullable=False, default='trial')
    trial_ends_at = Column(DateTime)
    subscription_ends_at = Column(DateTime)

    directory_visible = Column(Boolean, default=True)
    meta = Column("metadata", JSONType, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    members = relationship("UserTenant", back_populates="tenant", cascade="all, delete-orphan")
    invitations = relationship("Invitation", back_populates="tenant", cascade="all, delete-orphan")
    categories = relationship("TenantCategory", back_populates="tenant", cascade="all, delete-orphan")


class User(Base):
    """Platform user"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(String(30), nullable=False, default='user')
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    tenant_links = relationship("UserTenant", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part)

    @property
    def is_platform_admin(self) -> bool:
        return self.role == "platform_admin"

    @property
    def tenant_ids(self) -> list:
        return [link.tenant_id for link in self.tenant_links]


class UserTenant(Base):
    """Role assignment of a user inside a tenant"""
    __tablename__ = "user_tenants"
    __table_args__ = (
        UniqueConstraint('user_id', 'tenant_id', name='uq_user_tenants_user_tenant'),
    )

    id = Column(String(64), primary_key=True, default=generate_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default='MEMBER')
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="tenant_links")
    tenant = relationship("Tenant", back_populates="members")


class Invitation(Base):
    """Pending invitation of an email address into a tenant"""
    __tablename__ = "invitations"

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), nullable=False, default='MEMBER')
    token = Column(String(128), unique=True, nullable=False, index=True)
    invited_by = Column(String(64), ForeignKey("users.id"))
    status = Column(String(20), nullable=False, default='pending')
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="invitations")


class TenantCategory(Base):
    """Tenant-owned product category, target of enrichment category suggestions"""
    __tablename__ = "tenant_categories"

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    google_category_id = Column(String(64))
    is_active = Column(Boolean, default=True)

    tenant = relationship("Tenant", back_populates="categories")


# =====================================================
# SCANNING
# =====================================================

class ScanTemplate(Base, TimestampMixin):
    """Fallback values applied when enrichment lacks them"""
    __tablename__ = "scan_templates"

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    default_category = Column(String(255))
    default_price_cents = Column(Integer)
    default_currency = Column(String(3), nullable=False, default='USD')
    default_visibility = Column(String(20), nullable=False, default='private')
    enrichment_rules = Column(JSONType)


class ScanSession(Base):
    """A bounded unit of barcode scanning work for one tenant and user"""
    __tablename__ = "scan_sessions"
    __table_args__ = (
        Index('ix_scan_sessions_tenant_status', 'tenant_id', 'status'),
    )

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id"))
    template_id = Column(String(64), ForeignKey("scan_templates.id"))
    status = Column(String(20), nullable=False, default='active')
    device_type = Column(String(20), default='manual')
    scanned_count = Column(Integer, nullable=False, default=0)
    committed_count = Column(Integer, nullable=False, default=0)
    duplicate_count = Column(Integer, nullable=False, default=0)
    meta = Column("metadata", JSONType, default=dict)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime)

    template = relationship("ScanTemplate")
    results = relationship(
        "ScanResult",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ScanResult.created_at.desc()"
    )

    @property
    def is_active(self) -> bool:
        return self.status == 'active'


class ScanResult(Base, TimestampMixin):
    """One scanned barcode inside a session"""
    __tablename__ = "scan_results"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'session_id', 'barcode', name='uq_scan_results_tenant_session_barcode'),
        Index('ix_scan_results_tenant_status_created', 'tenant_id', 'status', 'created_at'),
    )

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(64), ForeignKey("scan_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    barcode = Column(String(64), nullable=False, index=True)
    sku = Column(String(128))
    raw_payload = Column(JSONType)
    status = Column(String(20), nullable=False, default='new')
    enrichment = Column(JSONType)
    validation = Column(JSONType)
    duplicate_of = Column(String(64))
    error = Column(Text)

    session = relationship("ScanSession", back_populates="results")


class BarcodeEnrichment(Base, TimestampMixin):
    """Platform-wide cache of provider lookups, keyed by barcode"""
    __tablename__ = "barcode_enrichments"

    id = Column(String(64), primary_key=True, default=generate_id)
    barcode = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(Text)
    brand = Column(String(255))
    description = Column(Text)
    image_url = Column(Text)
    image_thumbnail_url = Column(Text)
    source = Column(String(40), nullable=False)
    meta = Column("metadata", JSONType)
    payload = Column(JSONType, nullable=False)
    fetch_count = Column(Integer, nullable=False, default=1)
    last_fetched_at = Column(DateTime, default=datetime.utcnow)


# =====================================================
# CATALOG
# =====================================================

class InventoryItem(Base, TimestampMixin):
    """Canonical product record, identity is (tenant_id, sku)"""
    __tablename__ = "inventory_items"
    __table_args__ = (
        Index('ix_inventory_items_tenant_sku', 'tenant_id', 'sku'),
        # at most one non-trashed item per (tenant, sku)
        Index(
            'uq_inventory_items_live_sku', 'tenant_id', 'sku',
            unique=True,
            postgresql_where=text("item_status <> 'trashed'"),
            sqlite_where=text("item_status <> 'trashed'"),
        ),
    )

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    sku = Column(String(128), nullable=False)
    name = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    brand = Column(String(255), nullable=False, default='Unknown')
    description = Column(Text)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    price_cents = Column(Integer, nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='USD')
    visibility = Column(String(20), default='public')
    availability = Column(String(20), nullable=False, default='in_stock')
    category_path = Column(JSONType, default=list)
    tenant_category_id = Column(String(64), ForeignKey("tenant_categories.id"))
    image_url = Column(Text)
    meta = Column("metadata", JSONType)
    item_status = Column(String(20), nullable=False, default='active')
    source = Column(String(20), nullable=False, default='MANUAL')
    gtin = Column(String(64))
    enriched_at = Column(DateTime)
    enriched_from_barcode = Column(String(64))
    missing_images = Column(Boolean, nullable=False, default=False)

    photos = relationship(
        "PhotoAsset",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="PhotoAsset.position"
    )

    @property
    def is_trashed(self) -> bool:
        return self.item_status == 'trashed'


class PhotoAsset(Base):
    """Gallery image of an inventory item, positions are 0-based and contiguous"""
    __tablename__ = "photo_assets"

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    inventory_item_id = Column(String(64), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    width = Column(Integer)
    height = Column(Integer)
    content_type = Column(String(100))
    bytes = Column(Integer)
    exif_removed = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)
    alt = Column(Text)
    caption = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    item = relationship("InventoryItem", back_populates="photos")


# =====================================================
# DIRECTORY
# =====================================================

class DirectoryPhoto(Base):
    """Directory listing photo, one per (listing_id, position)"""
    __tablename__ = "directory_photos"
    __table_args__ = (
        UniqueConstraint('listing_id', 'position', name='uq_directory_photos_listing_position'),
    )

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    listing_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    width = Column(Integer)
    height = Column(Integer)
    content_type = Column(String(100))
    bytes = Column(Integer)
    exif_removed = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=False, default=0)
    alt = Column(Text)
    caption = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
