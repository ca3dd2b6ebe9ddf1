# app/modules/tenants/schemas.py
from pydantic import Field, validator
from typing import List, Literal, Optional
from datetime import datetime
import re

from app.core.auth.schemas import UserResponse
from app.core.subscription import TIER_FEATURES
from app.shared.schemas.common import BaseResponse, CamelModel

TenantRole = Literal["OWNER", "ADMIN", "MEMBER", "VIEWER"]

SUBSCRIPTION_STATUSES = ["trial", "active", "past_due", "canceled", "cancelled", "expired"]

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError('Invalid email address')
    return v

# ===== TENANTS =====

class TenantCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255, description="Derived from the name when omitted")
    subscription_tier: str = "starter"
    subscription_status: str = "trial"
    trial_ends_at: Optional[datetime] = None
    owner_user_id: Optional[str] = Field(None, description="User assigned as OWNER")

    @validator('slug')
    def validate_slug(cls, v):
        if v is not None and not SLUG_PATTERN.match(v):
            raise ValueError('Slug may only contain lowercase letters, digits and dashes')
        return v

    @validator('subscription_tier')
    def validate_tier(cls, v):
        if v not in TIER_FEATURES:
            raise ValueError(f'Unknown subscription tier {v}')
        return v

    @validator('subscription_status')
    def validate_status(cls, v):
        if v not in SUBSCRIPTION_STATUSES:
            raise ValueError(f'Unknown subscription status {v}')
        return v

class SubscriptionUpdate(CamelModel):
    subscription_tier: Optional[str] = None
    subscription_status: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None

    @validator('subscription_tier')
    def validate_tier(cls, v):
        if v is not None and v not in TIER_FEATURES:
            raise ValueError(f'Unknown subscription tier {v}')
        return v

    @validator('subscription_status')
    def validate_status(cls, v):
        if v is not None and v not in SUBSCRIPTION_STATUSES:
            raise ValueError(f'Unknown subscription status {v}')
        return v

class TenantInfo(CamelModel):
    id: str
    name: str
    slug: Optional[str] = None
    subscription_tier: str
    subscription_status: str
    trial_ends_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None
    directory_visible: Optional[bool] = True
    maintenance_state: Optional[str] = None
    created_at: datetime

class TenantResponse(BaseResponse):
    tenant: TenantInfo

class TenantListResponse(BaseResponse):
    tenants: List[TenantInfo]
    count: int

# ===== MEMBERS =====

class RoleAssignment(CamelModel):
    role: TenantRole

class MemberInfo(CamelModel):
    user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    created_at: datetime

class MemberResponse(BaseResponse):
    member: MemberInfo

class MemberListResponse(BaseResponse):
    members: List[MemberInfo]
    count: int

class MemberRemovedResponse(BaseResponse):
    removed: str

# ===== INVITATIONS =====

class InvitationCreate(CamelModel):
    email: str = Field(..., max_length=255)
    role: TenantRole = "MEMBER"

    @validator('email')
    def validate_email(cls, v):
        return _normalize_email(v)

class InvitationAccept(CamelModel):
    token: str = Field(..., min_length=1)
    password: Optional[str] = Field(None, min_length=6, description="Password of the existing account, or of the account to create")
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

class InvitationInfo(CamelModel):
    id: str
    tenant_id: str
    email: str
    role: str
    status: str
    invited_by: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime
    token: Optional[str] = None

class InvitationResponse(BaseResponse):
    invitation: InvitationInfo

class InvitationListResponse(BaseResponse):
    invitations: List[InvitationInfo]
    count: int

class InvitationAcceptResponse(BaseResponse):
    tenant_id: str
    role: str
    access_token: str = Field(..., serialization_alias="access_token")
    token_type: str = Field("bearer", serialization_alias="token_type")
    user: UserResponse
