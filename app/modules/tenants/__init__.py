# app/modules/tenants/__init__.py
"""
Tenants module - tenants, memberships and invitations

Architecture:
- router.py: tenant, member and invitation endpoints
- service.py: business rules (slugs, last owner, invitation lifecycle)
- repository.py: data access
- schemas.py: request/response models
"""

from .router import router, invitations_router
from .service import TenantService
from .repository import TenantRepository

__all__ = [
    "router",
    "invitations_router",
    "TenantService",
    "TenantRepository"
]
