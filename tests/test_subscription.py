"""Tests for subscription tier and status gating."""

from datetime import datetime, timedelta

import pytest

from app.core.errors import FeatureNotAvailable, SubscriptionReadOnly
from app.core.subscription import (
    maintenance_state, require_tier_feature, require_writable_subscription, tier_features
)
from app.shared.database.models import Tenant


def test_active_paid_tenant_is_writable():
    assert maintenance_state("professional", "active") == "active"


@pytest.mark.parametrize("status", ["canceled", "cancelled", "expired"])
def test_ended_subscription_freezes(status):
    assert maintenance_state("enterprise", status) == "freeze"


def test_expired_trial_freezes():
    now = datetime(2026, 1, 10)
    assert maintenance_state("starter", "trial", now - timedelta(days=1), now=now) == "freeze"
    assert maintenance_state("starter", "trial", now + timedelta(days=1), now=now) == "active"
    assert maintenance_state("starter", "trial", None, now=now) == "active"


def test_google_only_tier_is_read_only():
    assert maintenance_state("google_only", "active") == "freeze"


def test_tier_features_inherit_lower_tiers():
    features = tier_features("enterprise")
    assert "barcode_scan" in features
    assert "storefront" in features
    assert "google_shopping" in features
    assert "barcode_scan" not in tier_features("starter")


def test_chain_professional_gets_barcode_scan():
    assert "barcode_scan" in tier_features("chain_professional")
    assert "multi_location_5" in tier_features("chain_professional")


def test_require_writable_subscription_raises_with_state():
    tenant = Tenant(id="tid-1", name="Frozen", subscription_tier="starter", subscription_status="expired")

    with pytest.raises(SubscriptionReadOnly) as exc_info:
        require_writable_subscription(tenant)

    body = exc_info.value.to_dict()
    assert exc_info.value.status_code == 403
    assert body["error"] == "subscription_read_only"
    assert body["maintenanceState"] == "freeze"


def test_require_tier_feature():
    starter = Tenant(id="tid-2", name="Small", subscription_tier="starter", subscription_status="active")
    professional = Tenant(id="tid-3", name="Big", subscription_tier="professional", subscription_status="active")

    require_tier_feature(professional, "barcode_scan")
    with pytest.raises(FeatureNotAvailable) as exc_info:
        require_tier_feature(starter, "barcode_scan")
    assert exc_info.value.to_dict()["feature"] == "barcode_scan"
