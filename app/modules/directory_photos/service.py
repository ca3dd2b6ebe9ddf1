# app/modules/directory_photos/service.py
from typing import List, Optional
from datetime import datetime
import base64
import binascii
import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.auth.dependencies import verify_tenant_access
from app.core.errors import ApiError, NotFound, ValidationError
from app.shared.database.models import DirectoryPhoto, Tenant, User
from app.shared.services.storage_service import StorageService
from .repository import DirectoryPhotoRepository
from .schemas import (
    DirectoryPhotoInfo, PhotoCreate, PhotoListResponse, PhotoPosition,
    PhotoResponse, PhotoUpdate, RepairResponse
)

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(.+);base64,(.+)$", re.DOTALL)

# Occupied by a photo in the middle of a swap
SWAP_SENTINEL = -1


class DirectoryPhotoService:
    """
    Photo gallery of a directory listing

    Positions form a contiguous 0-based sequence per listing. Every
    multi-row position change runs in one transaction, one UPDATE at a
    time, parking rows on negative positions so the unique
    (listing_id, position) constraint holds after each statement.
    """

    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self.repository = DirectoryPhotoRepository(db)
        self.storage = storage

    # ==================== HELPERS ====================

    def _get_listing(self, identifier: str) -> Tenant:
        listing = self.repository.resolve_listing(identifier)
        if not listing:
            raise NotFound(f"Directory listing {identifier} not found", error="listing_not_found")
        return listing

    def _get_writable_listing(self, identifier: str, current_user: User) -> Tenant:
        listing = self._get_listing(identifier)
        verify_tenant_access(current_user, listing.id)
        return listing

    def _get_photo(self, listing: Tenant, photo_id: str) -> DirectoryPhoto:
        photo = self.repository.get_photo(listing.id, photo_id)
        if not photo:
            raise NotFound(f"Photo {photo_id} not found", error="photo_not_found")
        return photo

    def _list_response(self, listing: Tenant, message: str = "") -> PhotoListResponse:
        photos = [DirectoryPhotoInfo.model_validate(p) for p in self.repository.get_photos(listing.id)]
        return PhotoListResponse(message=message, photos=photos, count=len(photos))

    def _repack(self, photos: List[DirectoryPhoto]) -> int:
        """
        Move `photos`, in the given order, to positions 0..N-1

        First pass parks every row below the lowest position in use, second
        pass writes the final positions. Returns how many rows changed.
        """
        changed = sum(1 for index, photo in enumerate(photos) if photo.position != index)
        if not changed:
            return 0

        floor = min([0] + [photo.position for photo in photos])
        for index, photo in enumerate(photos):
            self.repository.set_position(photo, floor - 1 - index)
        for index, photo in enumerate(photos):
            self.repository.set_position(photo, index)
        return changed

    # ==================== QUERIES ====================

    async def list_photos(self, identifier: str) -> PhotoListResponse:
        listing = self._get_listing(identifier)
        return self._list_response(listing)

    # ==================== CREATE ====================

    async def create_photo(self, identifier: str, data: PhotoCreate, current_user: User) -> PhotoResponse:
        listing = self._get_writable_listing(identifier, current_user)
        self._check_limit(listing)

        content_type = data.content_type
        size = data.bytes

        if data.data_url:
            content, content_type = self._decode_data_url(data.data_url)
            extension = content_type.split("/")[-1] or "jpg"
            url = self._storage().upload_bytes(
                content,
                folder=f"directory/{listing.id}",
                filename=f"{datetime.utcnow().strftime('%Y%m%d%H%M%S')}.{extension}",
                content_type=content_type
            )
            size = len(content)
        elif data.url:
            url = data.url
        else:
            raise ValidationError("Provide a multipart 'file', a JSON 'url' or a JSON 'dataUrl'", error="missing_image")

        photo = self._append(
            listing,
            url=url,
            width=data.width,
            height=data.height,
            content_type=content_type,
            bytes=size,
            exif_removed=data.exif_removed,
            alt=data.alt,
            caption=data.caption
        )
        return PhotoResponse(message="Photo added", photo=DirectoryPhotoInfo.model_validate(photo))

    async def upload_photo(
        self,
        identifier: str,
        content: bytes,
        filename: str,
        content_type: Optional[str],
        alt: Optional[str],
        caption: Optional[str],
        current_user: User
    ) -> PhotoResponse:
        listing = self._get_writable_listing(identifier, current_user)
        self._check_limit(listing)

        url = self._storage().upload_bytes(
            content,
            folder=f"directory/{listing.id}",
            filename=filename or "photo",
            content_type=content_type
        )

        photo = self._append(
            listing,
            url=url,
            content_type=content_type,
            bytes=len(content),
            exif_removed=True,
            alt=alt,
            caption=caption
        )
        return PhotoResponse(message="Photo uploaded", photo=DirectoryPhotoInfo.model_validate(photo))

    def _check_limit(self, listing: Tenant) -> None:
        if self.repository.count_photos(listing.id) >= settings.directory_max_photos:
            raise ValidationError(
                f"Maximum {settings.directory_max_photos} photos per directory listing",
                error="photo_limit_exceeded"
            )

    def _storage(self) -> StorageService:
        if self.storage is None:
            raise ApiError("Server is not configured for direct uploads", error="storage_not_configured")
        return self.storage

    @staticmethod
    def _decode_data_url(data_url: str):
        match = DATA_URL_PATTERN.match(data_url)
        if not match:
            raise ValidationError("Invalid dataUrl format", error="invalid_data_url")
        try:
            content = base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("dataUrl payload is not valid base64", error="invalid_data_url")
        return content, match.group(1)

    def _append(self, listing: Tenant, **fields) -> DirectoryPhoto:
        """New photos go after the highest position; gaps are left to repair"""
        max_position = self.repository.max_position(listing.id)
        position = max_position + 1 if max_position is not None else 0

        photo = self.repository.create_photo(
            tenant_id=listing.id,
            listing_id=listing.id,
            position=position,
            **fields
        )
        self.db.commit()
        self.db.refresh(photo)

        logger.info(f"🖼️ Photo {photo.id} added to listing {listing.id} at position {position}")
        return photo

    # ==================== UPDATE ====================

    async def update_photo(
        self,
        identifier: str,
        photo_id: str,
        data: PhotoUpdate,
        current_user: User
    ) -> PhotoResponse:
        listing = self._get_writable_listing(identifier, current_user)
        photo = self._get_photo(listing, photo_id)

        if data.alt is not None:
            photo.alt = data.alt
        if data.caption is not None:
            photo.caption = data.caption

        if data.position is not None and data.position != photo.position:
            count = self.repository.count_photos(listing.id)
            if data.position >= count:
                raise ValidationError(
                    f"Position must be between 0 and {count - 1}",
                    error="invalid_position"
                )
            self._swap(listing, photo, data.position)

        self.db.commit()
        self.db.refresh(photo)
        return PhotoResponse(message="Photo updated", photo=DirectoryPhotoInfo.model_validate(photo))

    def _swap(self, listing: Tenant, photo: DirectoryPhoto, new_position: int) -> None:
        old_position = photo.position
        target = self.repository.get_photo_at(listing.id, new_position)

        try:
            if target:
                self.repository.set_position(target, SWAP_SENTINEL)
            self.repository.set_position(photo, new_position)
            if target:
                self.repository.set_position(target, old_position)
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"❌ Position swap failed for photo {photo.id}: {e}")
            raise ApiError("Position update failed", error="position_update_failed")

        logger.info(f"🔀 Photo {photo.id} moved {old_position} -> {new_position} in listing {listing.id}")

    # ==================== DELETE ====================

    async def delete_photo(self, identifier: str, photo_id: str, current_user: User) -> None:
        listing = self._get_writable_listing(identifier, current_user)
        photo = self._get_photo(listing, photo_id)
        url = photo.url

        self.repository.delete_photo(photo)
        remaining = self.repository.get_photos(listing.id)
        self._repack(remaining)
        self.db.commit()

        logger.info(f"🗑️ Photo {photo_id} deleted, {len(remaining)} photos re-packed in listing {listing.id}")

        # blob removal only after the row is gone
        if self.storage is not None:
            self.storage.delete_by_url(url)

    # ==================== REORDER ====================

    async def reorder_photos(self, identifier: str, updates: List[PhotoPosition], current_user: User) -> None:
        listing = self._get_writable_listing(identifier, current_user)

        photos = {photo.id: photo for photo in self.repository.get_photos(listing.id)}
        requested = {update.id: update.position for update in updates}

        if len(requested) != len(updates):
            raise ValidationError("Each photo may appear only once", error="duplicate_photo")
        if any(photo_id not in photos for photo_id in requested):
            raise ValidationError(
                "Some photos were not found or do not belong to this listing",
                error="photos_not_found"
            )

        final_positions = {
            photo_id: requested.get(photo_id, photo.position)
            for photo_id, photo in photos.items()
        }
        if len(set(final_positions.values())) != len(final_positions):
            raise ValidationError("Photo positions must be unique", error="duplicate_positions")
        if set(final_positions.values()) != set(range(len(photos))):
            raise ValidationError(
                f"Positions must cover 0 to {len(photos) - 1} without gaps",
                error="invalid_position"
            )

        moving = [photos[photo_id] for photo_id in requested if photos[photo_id].position != requested[photo_id]]
        if moving:
            floor = min([0] + [photo.position for photo in photos.values()])
            for index, photo in enumerate(moving):
                self.repository.set_position(photo, floor - 1 - index)
            for photo in moving:
                self.repository.set_position(photo, requested[photo.id])
        self.db.commit()

        logger.info(f"🔀 Reordered {len(moving)} photos in listing {listing.id}")

    async def repair_positions(self, identifier: str, current_user: User) -> RepairResponse:
        """Re-pack gaps and photos stranded on negative positions into 0..N-1"""
        listing = self._get_writable_listing(identifier, current_user)

        photos = sorted(
            self.repository.get_photos(listing.id),
            key=lambda p: (p.position < 0, p.position, p.created_at)
        )
        repaired = self._repack(photos)
        self.db.commit()

        if repaired:
            logger.warning(f"🔧 Repaired {repaired} photo positions in listing {listing.id}")

        listed = self._list_response(listing, message=f"Repaired {repaired} positions")
        return RepairResponse(message=listed.message, photos=listed.photos, count=listed.count, repaired=repaired)
