# app/modules/tenants/service.py
from datetime import datetime, timedelta
from typing import Optional
import logging
import re
import secrets

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.auth.dependencies import (
    get_tenant_or_404, tenant_role, verify_tenant_access, verify_tenant_manager
)
from app.core.auth.schemas import UserResponse
from app.core.auth.service import AuthService
from app.core.errors import BusinessRuleViolation, Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from app.core.subscription import maintenance_state
from app.shared.database.models import Invitation, Tenant, User, UserTenant
from .repository import TenantRepository
from .schemas import (
    InvitationAccept, InvitationAcceptResponse, InvitationCreate, InvitationInfo,
    InvitationListResponse, InvitationResponse, MemberInfo, MemberListResponse,
    MemberRemovedResponse, MemberResponse, RoleAssignment, SubscriptionUpdate,
    TenantCreate, TenantInfo, TenantListResponse, TenantResponse
)

logger = logging.getLogger(__name__)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "tenant"


def tenant_info(tenant: Tenant) -> TenantInfo:
    info = TenantInfo.model_validate(tenant)
    info.maintenance_state = maintenance_state(
        tenant.subscription_tier, tenant.subscription_status, tenant.trial_ends_at
    )
    return info


def member_info(membership: UserTenant) -> MemberInfo:
    return MemberInfo(
        user_id=membership.user_id,
        email=membership.user.email,
        first_name=membership.user.first_name,
        last_name=membership.user.last_name,
        role=membership.role,
        created_at=membership.created_at
    )


class TenantService:
    def __init__(self, db: Session):
        self.db = db
        self.repository = TenantRepository(db)

    # ==================== TENANTS ====================

    async def create_tenant(self, data: TenantCreate) -> TenantResponse:
        slug = data.slug or slugify(data.name)
        if self.repository.get_tenant_by_slug(slug):
            raise Conflict(f"Slug '{slug}' is already taken", error="slug_taken")

        owner = None
        if data.owner_user_id:
            owner = self.repository.get_user(data.owner_user_id)
            if not owner:
                raise NotFound(f"User {data.owner_user_id} not found", error="user_not_found")

        tenant = self.repository.create_tenant(
            name=data.name,
            slug=slug,
            subscription_tier=data.subscription_tier,
            subscription_status=data.subscription_status,
            trial_ends_at=data.trial_ends_at
        )
        if owner:
            self.repository.add_member(tenant.id, owner.id, "OWNER")
        self.db.commit()
        self.db.refresh(tenant)

        logger.info(f"🏪 Tenant {tenant.id} ({slug}) created")
        return TenantResponse(message="Tenant created", tenant=tenant_info(tenant))

    async def list_tenants(self, current_user: User) -> TenantListResponse:
        tenant_ids = None if current_user.is_platform_admin else current_user.tenant_ids
        tenants = [tenant_info(t) for t in self.repository.get_tenants(tenant_ids)]
        return TenantListResponse(tenants=tenants, count=len(tenants))

    async def get_tenant(self, tenant_id: str, current_user: User) -> TenantResponse:
        verify_tenant_access(current_user, tenant_id)
        return TenantResponse(tenant=tenant_info(get_tenant_or_404(self.db, tenant_id)))

    async def update_subscription(self, tenant_id: str, data: SubscriptionUpdate) -> TenantResponse:
        tenant = get_tenant_or_404(self.db, tenant_id)

        changes = data.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(tenant, key, value)
        self.db.commit()
        self.db.refresh(tenant)

        logger.info(f"💳 Subscription of tenant {tenant_id} updated: {changes}")
        return TenantResponse(message="Subscription updated", tenant=tenant_info(tenant))

    # ==================== MEMBERS ====================

    async def list_members(self, tenant_id: str, current_user: User) -> MemberListResponse:
        verify_tenant_access(current_user, tenant_id)
        get_tenant_or_404(self.db, tenant_id)
        members = [member_info(m) for m in self.repository.get_members(tenant_id)]
        return MemberListResponse(members=members, count=len(members))

    async def assign_role(
        self,
        tenant_id: str,
        user_id: str,
        data: RoleAssignment,
        current_user: User
    ) -> MemberResponse:
        """Create or change the single role assignment of a user in a tenant"""
        get_tenant_or_404(self.db, tenant_id)
        verify_tenant_manager(self.db, current_user, tenant_id)

        if data.role == "OWNER" and not current_user.is_platform_admin \
                and tenant_role(self.db, current_user, tenant_id) != "OWNER":
            raise Forbidden("Only owners can assign the OWNER role")

        user = self.repository.get_user(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found", error="user_not_found")

        membership = self.repository.get_membership(tenant_id, user_id)
        if membership:
            if membership.role == "OWNER" and data.role != "OWNER":
                self._ensure_other_owner(tenant_id)
            membership.role = data.role
        else:
            membership = self.repository.add_member(tenant_id, user_id, data.role)
        self.db.commit()
        self.db.refresh(membership)

        logger.info(f"👤 User {user_id} is now {data.role} of tenant {tenant_id}")
        return MemberResponse(message="Role assigned", member=member_info(membership))

    async def remove_member(self, tenant_id: str, user_id: str, current_user: User) -> MemberRemovedResponse:
        get_tenant_or_404(self.db, tenant_id)
        verify_tenant_manager(self.db, current_user, tenant_id)

        membership = self.repository.get_membership(tenant_id, user_id)
        if not membership:
            raise NotFound(f"User {user_id} is not a member of tenant {tenant_id}", error="membership_not_found")
        if membership.role == "OWNER":
            self._ensure_other_owner(tenant_id)

        self.db.delete(membership)
        self.db.commit()

        logger.info(f"👤 User {user_id} removed from tenant {tenant_id}")
        return MemberRemovedResponse(message="Member removed", removed=user_id)

    def _ensure_other_owner(self, tenant_id: str) -> None:
        if self.repository.count_owners(tenant_id) <= 1:
            raise BusinessRuleViolation("A tenant must keep at least one owner", error="last_owner")

    # ==================== INVITATIONS ====================

    async def create_invitation(
        self,
        tenant_id: str,
        data: InvitationCreate,
        current_user: User
    ) -> InvitationResponse:
        """
        Invite an email address into a tenant

        The token is returned in the response; delivering it is up to the caller.
        """
        get_tenant_or_404(self.db, tenant_id)
        verify_tenant_manager(self.db, current_user, tenant_id)
        now = datetime.utcnow()

        user = self.repository.get_user_by_email(data.email)
        if user and self.repository.get_membership(tenant_id, user.id):
            raise Conflict(f"{data.email} is already a member of this tenant", error="already_member")
        if self.repository.get_pending_invitation(tenant_id, data.email, now):
            raise Conflict(f"{data.email} already has a pending invitation", error="invitation_pending")

        invitation = self.repository.create_invitation(
            tenant_id=tenant_id,
            email=data.email,
            role=data.role,
            token=secrets.token_urlsafe(32),
            invited_by=current_user.id,
            status='pending',
            expires_at=now + timedelta(days=settings.invitation_expire_days)
        )
        self.db.commit()
        self.db.refresh(invitation)

        logger.info(f"✉️ Invitation {invitation.id} created for {data.email} in tenant {tenant_id}")
        return InvitationResponse(message="Invitation created", invitation=InvitationInfo.model_validate(invitation))

    async def list_invitations(self, tenant_id: str, current_user: User) -> InvitationListResponse:
        get_tenant_or_404(self.db, tenant_id)
        verify_tenant_manager(self.db, current_user, tenant_id)

        invitations = []
        for invitation in self.repository.get_invitations(tenant_id):
            info = InvitationInfo.model_validate(invitation)
            info.token = None
            invitations.append(info)
        return InvitationListResponse(invitations=invitations, count=len(invitations))

    async def revoke_invitation(self, tenant_id: str, invitation_id: str, current_user: User) -> InvitationResponse:
        get_tenant_or_404(self.db, tenant_id)
        verify_tenant_manager(self.db, current_user, tenant_id)

        invitation = self.repository.get_invitation(tenant_id, invitation_id)
        if not invitation:
            raise NotFound(f"Invitation {invitation_id} not found", error="invitation_not_found")
        if invitation.status != 'pending':
            raise Conflict(f"Invitation is {invitation.status}", error="invitation_not_pending")

        invitation.status = 'revoked'
        self.db.commit()
        self.db.refresh(invitation)

        info = InvitationInfo.model_validate(invitation)
        info.token = None
        return InvitationResponse(message="Invitation revoked", invitation=info)

    async def accept_invitation(self, data: InvitationAccept) -> InvitationAcceptResponse:
        invitation = self.repository.get_invitation_by_token(data.token)
        if not invitation:
            raise NotFound("Invitation not found", error="invitation_not_found")
        if invitation.status != 'pending':
            raise Conflict(f"Invitation is {invitation.status}", error="invitation_not_pending")

        now = datetime.utcnow()
        if invitation.expires_at < now:
            invitation.status = 'expired'
            self.db.commit()
            raise BusinessRuleViolation("Invitation has expired", error="invitation_expired")

        user = self.repository.get_user_by_email(invitation.email)
        if user:
            # an existing account proves ownership with its own password
            if not data.password or not AuthService.verify_password(data.password, user.password_hash):
                logger.warning(f"🔒 Invitation {invitation.id} accept refused for existing account {user.email}")
                raise Unauthorized("Password of the existing account is required", error="unauthorized")
        else:
            if not data.password:
                raise ValidationError("A password is required to create the account", error="password_required")
            user = User(
                email=invitation.email,
                password_hash=AuthService.get_password_hash(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                role='user',
                is_active=True
            )
            self.db.add(user)
            self.db.flush()
            logger.info(f"👤 Account created for {invitation.email} from invitation")

        if not self.repository.get_membership(invitation.tenant_id, user.id):
            self.repository.add_member(invitation.tenant_id, user.id, invitation.role)

        invitation.status = 'accepted'
        invitation.accepted_at = now
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"✅ Invitation {invitation.id} accepted by {user.email}")

        access_token = AuthService.create_access_token(data={
            "user_id": user.id,
            "email": user.email,
            "role": user.role
        })
        return InvitationAcceptResponse(
            message="Invitation accepted",
            tenant_id=invitation.tenant_id,
            role=invitation.role,
            access_token=access_token,
            user=UserResponse(
                id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                role=user.role,
                is_active=user.is_active,
                tenant_ids=user.tenant_ids
            )
        )
