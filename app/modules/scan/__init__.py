# app/modules/scan/__init__.py
"""
Scan module - barcode scanning into inventory

Covers the full scan workflow:
- Scan sessions per tenant and user, capped per tenant
- Barcode lookups with enrichment and duplicate detection
- Commit of results into inventory items and photo galleries
- Idle session cleanup

Architecture:
- router.py: scan endpoints
- service.py: session and result workflow
- commit.py: validation and item materialisation
- metadata.py: typed product metadata and image galleries
- repository.py: data access
- schemas.py: request/response models
"""

from .router import router
from .service import ScanService, cleanup_idle_sessions
from .repository import ScanRepository

__all__ = [
    "router",
    "ScanService",
    "ScanRepository",
    "cleanup_idle_sessions"
]
