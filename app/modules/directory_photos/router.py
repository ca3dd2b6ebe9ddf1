# app/modules/directory_photos/router.py
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

from app.config.database import get_db
from app.core.auth.dependencies import get_current_user
from app.shared.database.models import User
from app.shared.services.storage_service import StorageService, get_storage_service
from .service import DirectoryPhotoService
from .schemas import (
    PhotoCreate, PhotoListResponse, PhotoPosition, PhotoResponse, PhotoUpdate, RepairResponse
)

router = APIRouter()

@router.get("/{listing_id}/photos", response_model=PhotoListResponse)
async def list_photos(
    listing_id: str,
    db: Session = Depends(get_db)
):
    """
    Photos of a directory listing ordered by position

    `listing_id` accepts a tenant id or a tenant slug. Public endpoint.
    """
    service = DirectoryPhotoService(db)
    return await service.list_photos(listing_id)

@router.post("/{listing_id}/photos", response_model=PhotoResponse, status_code=201)
async def create_photo(
    listing_id: str,
    photo_data: PhotoCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service)
):
    """
    Add a photo from a URL or a base64 data URL

    **Body:**
    ```json
        {
            "url": "https://cdn.example.com/storefront.jpg",
            "alt": "Storefront",
            "caption": "Main entrance"
        }
    ```

    **Limits:**
    - Maximum 10 photos per listing
    - New photos are appended after the last position
    """
    service = DirectoryPhotoService(db, storage)
    return await service.create_photo(listing_id, photo_data, current_user)

@router.post("/{listing_id}/photos/upload", response_model=PhotoResponse, status_code=201)
async def upload_photo(
    listing_id: str,
    file: UploadFile = File(..., description="Image file"),
    alt: Optional[str] = Form(None),
    caption: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service)
):
    """Add a photo from a multipart file upload"""
    content = await file.read()
    service = DirectoryPhotoService(db, storage)
    return await service.upload_photo(
        listing_id,
        content=content,
        filename=file.filename,
        content_type=file.content_type,
        alt=alt,
        caption=caption,
        current_user=current_user
    )

@router.put("/{listing_id}/photos/reorder", status_code=204)
async def reorder_photos(
    listing_id: str,
    updates: List[PhotoPosition],
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Apply several position changes atomically

    **Body:** `[{"id": "...", "position": 0}, ...]`. Every photo must belong to
    the listing and the resulting positions must be exactly 0..N-1.
    """
    service = DirectoryPhotoService(db)
    await service.reorder_photos(listing_id, updates, current_user)
    return Response(status_code=204)

@router.post("/{listing_id}/photos/repair", response_model=RepairResponse)
async def repair_positions(
    listing_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Close gaps and recover photos left on temporary positions"""
    service = DirectoryPhotoService(db)
    return await service.repair_positions(listing_id, current_user)

@router.put("/{listing_id}/photos/{photo_id}", response_model=PhotoResponse)
async def update_photo(
    listing_id: str,
    photo_id: str,
    photo_data: PhotoUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Update alt, caption or position

    A new position must be within `0..count-1`; the photo occupying it
    takes the old position.
    """
    service = DirectoryPhotoService(db)
    return await service.update_photo(listing_id, photo_id, photo_data, current_user)

@router.delete("/{listing_id}/photos/{photo_id}", status_code=204)
async def delete_photo(
    listing_id: str,
    photo_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service)
):
    """Delete a photo and re-pack the remaining positions to 0..N-1"""
    service = DirectoryPhotoService(db, storage)
    await service.delete_photo(listing_id, photo_id, current_user)
    return Response(status_code=204)
