# app/modules/tenants/router.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import get_current_user, get_platform_admin
from app.shared.database.models import User
from .service import TenantService
from .schemas import (
    InvitationAccept, InvitationAcceptResponse, InvitationCreate, InvitationListResponse,
    InvitationResponse, MemberListResponse, MemberRemovedResponse, MemberResponse,
    RoleAssignment, SubscriptionUpdate, TenantCreate, TenantListResponse, TenantResponse
)

router = APIRouter()
invitations_router = APIRouter()

# ==================== TENANTS ====================

@router.post("", response_model=TenantResponse, status_code=201)
async def create_tenant(
    tenant_data: TenantCreate,
    current_user: User = Depends(get_platform_admin),
    db: Session = Depends(get_db)
):
    """
    Create a tenant (platform administrators)

    **Body:**
    ```json
        {
            "name": "Corner Store",
            "slug": "corner-store",
            "subscriptionTier": "professional",
            "ownerUserId": "9f2c..."
        }
    ```
    """
    service = TenantService(db)
    return await service.create_tenant(tenant_data)

@router.get("", response_model=TenantListResponse)
async def list_tenants(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Tenants the current user belongs to; every tenant for platform administrators"""
    service = TenantService(db)
    return await service.list_tenants(current_user)

@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = TenantService(db)
    return await service.get_tenant(tenant_id, current_user)

@router.patch("/{tenant_id}/subscription", response_model=TenantResponse)
async def update_subscription(
    tenant_id: str,
    subscription_data: SubscriptionUpdate,
    current_user: User = Depends(get_platform_admin),
    db: Session = Depends(get_db)
):
    """
    Change tier, status or trial end of a tenant

    **Read-only states:**
    - `canceled`, `cancelled` or `expired` status
    - `trial` status past `trialEndsAt`
    - `google_only` tier
    """
    service = TenantService(db)
    return await service.update_subscription(tenant_id, subscription_data)

# ==================== MEMBERS ====================

@router.get("/{tenant_id}/users", response_model=MemberListResponse)
async def list_members(
    tenant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = TenantService(db)
    return await service.list_members(tenant_id, current_user)

@router.put("/{tenant_id}/users/{user_id}", response_model=MemberResponse)
async def assign_role(
    tenant_id: str,
    user_id: str,
    role_data: RoleAssignment,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Assign or change a user's role in the tenant

    **Roles:** OWNER, ADMIN, MEMBER, VIEWER. Requires OWNER or ADMIN; only
    owners grant OWNER. The last owner cannot be demoted.
    """
    service = TenantService(db)
    return await service.assign_role(tenant_id, user_id, role_data, current_user)

@router.delete("/{tenant_id}/users/{user_id}", response_model=MemberRemovedResponse)
async def remove_member(
    tenant_id: str,
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove a user from the tenant; the last owner cannot be removed"""
    service = TenantService(db)
    return await service.remove_member(tenant_id, user_id, current_user)

# ==================== INVITATIONS ====================

@router.post("/{tenant_id}/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    tenant_id: str,
    invitation_data: InvitationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Invite an email address into the tenant

    The invitation token is returned in the response and expires after 7 days.
    """
    service = TenantService(db)
    return await service.create_invitation(tenant_id, invitation_data, current_user)

@router.get("/{tenant_id}/invitations", response_model=InvitationListResponse)
async def list_invitations(
    tenant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = TenantService(db)
    return await service.list_invitations(tenant_id, current_user)

@router.delete("/{tenant_id}/invitations/{invitation_id}", response_model=InvitationResponse)
async def revoke_invitation(
    tenant_id: str,
    invitation_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = TenantService(db)
    return await service.revoke_invitation(tenant_id, invitation_id, current_user)

@invitations_router.post("/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    accept_data: InvitationAccept,
    db: Session = Depends(get_db)
):
    """
    Accept an invitation by token

    Creates the account when the email is not registered yet. `password` is
    always required: it sets the new account's password, or must match the
    existing account's password (401 otherwise). Returns an access token.
    """
    service = TenantService(db)
    return await service.accept_invitation(accept_data)
