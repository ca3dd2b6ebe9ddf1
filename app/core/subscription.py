# app/core/subscription.py
"""
Subscription tier and status gating.

Write operations on tenant data are refused while a tenant is frozen
(read-only visibility mode). Premium features are granted per tier, with
lower tiers inherited by higher ones.
"""
from datetime import datetime
from typing import Optional

from app.core.errors import FeatureNotAvailable, SubscriptionReadOnly
from app.shared.database.models import Tenant

TIER_FEATURES = {
    "google_only": {"google_shopping", "basic_product_pages"},
    "starter": {"storefront", "product_search", "basic_categories"},
    "professional": {"barcode_scan", "quick_start_wizard", "image_gallery_5", "custom_branding"},
    "enterprise": {"image_gallery_10", "api_access", "advanced_analytics"},
    "organization": {"propagation_products", "organization_dashboard", "api_access"},
    "chain_starter": {"storefront", "product_search", "multi_location_5"},
    "chain_professional": {"barcode_scan", "quick_start_wizard", "image_gallery_5", "multi_location_25"},
    "chain_enterprise": {"image_gallery_10", "api_access", "unlimited_locations"},
}

TIER_HIERARCHY = {
    "google_only": [],
    "starter": ["google_only"],
    "professional": ["starter", "google_only"],
    "enterprise": ["professional", "starter", "google_only"],
    "organization": ["professional", "starter", "google_only"],
    "chain_starter": ["starter", "google_only"],
    "chain_professional": ["chain_starter", "professional", "starter", "google_only"],
    "chain_enterprise": ["chain_professional", "enterprise", "professional", "starter", "google_only"],
}

READ_ONLY_TIERS = {"google_only"}
FROZEN_STATUSES = {"canceled", "cancelled", "expired"}


def maintenance_state(
    tier: Optional[str],
    status: Optional[str],
    trial_ends_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> str:
    """Return "freeze" when the tenant may only read its data, else "active"."""
    now = now or datetime.utcnow()
    tier = tier or "starter"
    status = status or "active"

    if status in FROZEN_STATUSES:
        return "freeze"
    if status == "trial" and trial_ends_at is not None and trial_ends_at < now:
        return "freeze"
    if tier in READ_ONLY_TIERS:
        return "freeze"
    return "active"


def tier_features(tier: Optional[str]) -> set:
    tier = tier or "starter"
    features = set(TIER_FEATURES.get(tier, set()))
    for inherited in TIER_HIERARCHY.get(tier, []):
        features |= TIER_FEATURES.get(inherited, set())
    return features


def require_writable_subscription(tenant: Tenant) -> None:
    state = maintenance_state(tenant.subscription_tier, tenant.subscription_status, tenant.trial_ends_at)
    if state == "freeze":
        raise SubscriptionReadOnly(
            "Your account is in read-only visibility mode. Upgrade to add or update products.",
            extra={
                "subscription_tier": tenant.subscription_tier,
                "subscription_status": tenant.subscription_status,
                "maintenanceState": state,
            }
        )


def require_tier_feature(tenant: Tenant, feature: str) -> None:
    if feature not in tier_features(tenant.subscription_tier):
        raise FeatureNotAvailable(
            f"Feature '{feature}' is not included in the {tenant.subscription_tier} tier",
            extra={"feature": feature, "subscription_tier": tenant.subscription_tier}
        )
