from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from app.config.database import get_db
from app.core.errors import Forbidden, NotFound
from app.shared.database.models import Tenant, User, UserTenant
from app.core.auth.service import AuthService

security = HTTPBearer()

TENANT_MANAGER_ROLES = ["OWNER", "ADMIN"]

class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user"""

    payload = AuthService.verify_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    user_id: Optional[str] = payload.get("user_id")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == user_id).first()

    if user is None:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("Inactive user")

    return user

def get_platform_admin(current_user: User = Depends(get_current_user)) -> User:
    """Dependency for platform-wide administration endpoints"""
    if not current_user.is_platform_admin:
        raise Forbidden("Platform administrator access required", error="platform_admin_required")
    return current_user

# Utility functions for tenant permission checks
def has_tenant_access(user: User, tenant_id: str) -> bool:
    if user.is_platform_admin:
        return True
    return tenant_id in user.tenant_ids

def tenant_role(db: Session, user: User, tenant_id: str) -> Optional[str]:
    link = db.query(UserTenant).filter(
        UserTenant.user_id == user.id,
        UserTenant.tenant_id == tenant_id
    ).first()
    return link.role if link else None

def verify_tenant_access(user: User, tenant_id: str) -> None:
    if not has_tenant_access(user, tenant_id):
        raise Forbidden(f"No access to tenant {tenant_id}")

def verify_tenant_manager(db: Session, user: User, tenant_id: str) -> None:
    """OWNER/ADMIN of the tenant, or platform admin"""
    if user.is_platform_admin:
        return
    if tenant_role(db, user, tenant_id) not in TENANT_MANAGER_ROLES:
        raise Forbidden("Tenant owner or admin role required")

def get_tenant_or_404(db: Session, tenant_id: str) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFound(f"Tenant {tenant_id} not found", error="tenant_not_found")
    return tenant
