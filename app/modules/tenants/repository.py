# app/modules/tenants/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from typing import List, Optional

from app.shared.database.models import Invitation, Tenant, User, UserTenant

class TenantRepository:
    def __init__(self, db: Session):
        self.db = db

    # ==================== TENANTS ====================

    def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.slug == slug).first()

    def get_tenants(self, tenant_ids: Optional[List[str]] = None) -> List[Tenant]:
        """All tenants, or only `tenant_ids` when given"""
        query = self.db.query(Tenant)
        if tenant_ids is not None:
            if not tenant_ids:
                return []
            query = query.filter(Tenant.id.in_(tenant_ids))
        return query.order_by(Tenant.created_at.desc()).all()

    def create_tenant(self, **fields) -> Tenant:
        tenant = Tenant(**fields)
        self.db.add(tenant)
        self.db.flush()
        return tenant

    # ==================== MEMBERS ====================

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(func.lower(User.email) == email.lower()).first()

    def get_membership(self, tenant_id: str, user_id: str) -> Optional[UserTenant]:
        return self.db.query(UserTenant).filter(
            and_(
                UserTenant.tenant_id == tenant_id,
                UserTenant.user_id == user_id
            )
        ).first()

    def get_members(self, tenant_id: str) -> List[UserTenant]:
        return self.db.query(UserTenant).filter(
            UserTenant.tenant_id == tenant_id
        ).order_by(UserTenant.created_at).all()

    def count_owners(self, tenant_id: str) -> int:
        return self.db.query(func.count(UserTenant.id)).filter(
            and_(
                UserTenant.tenant_id == tenant_id,
                UserTenant.role == 'OWNER'
            )
        ).scalar() or 0

    def add_member(self, tenant_id: str, user_id: str, role: str) -> UserTenant:
        membership = UserTenant(tenant_id=tenant_id, user_id=user_id, role=role)
        self.db.add(membership)
        self.db.flush()
        return membership

    # ==================== INVITATIONS ====================

    def get_invitation(self, tenant_id: str, invitation_id: str) -> Optional[Invitation]:
        return self.db.query(Invitation).filter(
            and_(
                Invitation.id == invitation_id,
                Invitation.tenant_id == tenant_id
            )
        ).first()

    def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        return self.db.query(Invitation).filter(Invitation.token == token).first()

    def get_pending_invitation(self, tenant_id: str, email: str, now) -> Optional[Invitation]:
        return self.db.query(Invitation).filter(
            and_(
                Invitation.tenant_id == tenant_id,
                func.lower(Invitation.email) == email.lower(),
                Invitation.status == 'pending',
                Invitation.expires_at > now
            )
        ).first()

    def get_invitations(self, tenant_id: str) -> List[Invitation]:
        return self.db.query(Invitation).filter(
            Invitation.tenant_id == tenant_id
        ).order_by(Invitation.created_at.desc()).all()

    def create_invitation(self, **fields) -> Invitation:
        invitation = Invitation(**fields)
        self.db.add(invitation)
        self.db.flush()
        return invitation
