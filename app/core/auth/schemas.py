from pydantic import BaseModel, Field
from typing import List, Optional

class UserLogin(BaseModel):
    """Login body"""
    email: str = Field(..., description="User email")
    password: str = Field(..., min_length=6, description="User password")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "owner@corner-store.com",
                "password": "owner123"
            }
        }

class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_active: bool
    tenant_ids: List[str] = []

    class Config:
        from_attributes = True

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
