# app/api/v1/router.py
from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.config.settings import settings
from app.api.v1.auth import router as auth_router
from app.modules.tenants import router as tenants_router, invitations_router
from app.modules.scan import router as scan_router
from app.modules.directory_photos import router as directory_photos_router

# Main router of API v1
api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(
    tenants_router,
    prefix="/tenants",
    tags=["Tenants"]
)

api_router.include_router(
    invitations_router,
    prefix="/invitations",
    tags=["Tenants"]
)

api_router.include_router(
    scan_router,
    prefix="/scan",
    tags=["Scan to Inventory"]
)

api_router.include_router(
    directory_photos_router,
    prefix="/directory",
    tags=["Directory Photos"]
)

# ==================== ROOT ENDPOINTS ====================

@api_router.get("/")
async def api_root():
    return {
        "message": f"{settings.app_name} v1",
        "version": settings.version,
        "status": "active",
        "docs": "/docs",
        "available_endpoints": {
            "authentication": "/api/v1/auth",
            "tenants": "/api/v1/tenants",
            "invitations": "/api/v1/invitations",
            "scan": "/api/v1/scan",
            "directory": "/api/v1/directory/{listing}/photos"
        }
    }

@api_router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version,
        "modules": {
            "auth": {"status": "active", "features": ["JWT", "Tenant roles"]},
            "tenants": {"status": "active", "features": ["Members", "Invitations", "Subscriptions"]},
            "scan": {"status": "active", "features": ["Sessions", "Barcode enrichment", "Commit to inventory"]},
            "directory": {"status": "active", "features": ["Photo gallery", "Position management"]}
        }
    }

@api_router.get("/metrics", include_in_schema=False)
async def metrics_endpoint():
    """Prometheus exposition format"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
