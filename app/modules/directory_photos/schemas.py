# app/modules/directory_photos/schemas.py
from pydantic import Field, validator
from typing import List, Optional
from datetime import datetime

from app.shared.schemas.common import BaseResponse, CamelModel

class PhotoCreate(CamelModel):
    """Either an external `url` or a base64 `dataUrl` to upload"""
    url: Optional[str] = Field(None, description="Already hosted image URL")
    data_url: Optional[str] = Field(None, description="data:<mime>;base64,<payload>")
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    bytes: Optional[int] = Field(None, ge=0)
    content_type: Optional[str] = None
    exif_removed: bool = True
    alt: Optional[str] = Field(None, max_length=500)
    caption: Optional[str] = Field(None, max_length=1000)

    @validator('url')
    def validate_url(cls, v):
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError('url must be an http(s) URL')
        return v

class PhotoUpdate(CamelModel):
    alt: Optional[str] = Field(None, max_length=500)
    caption: Optional[str] = Field(None, max_length=1000)
    position: Optional[int] = Field(None, ge=0)

class PhotoPosition(CamelModel):
    id: str
    position: int = Field(..., ge=0)

class DirectoryPhotoInfo(CamelModel):
    id: str
    tenant_id: str
    listing_id: str
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    content_type: Optional[str] = None
    bytes: Optional[int] = None
    exif_removed: bool = True
    position: int
    alt: Optional[str] = None
    caption: Optional[str] = None
    created_at: datetime

class PhotoResponse(BaseResponse):
    photo: DirectoryPhotoInfo

class PhotoListResponse(BaseResponse):
    photos: List[DirectoryPhotoInfo]
    count: int

class RepairResponse(PhotoListResponse):
    repaired: int
