# app/modules/directory_photos/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List, Optional

from app.shared.database.models import DirectoryPhoto, Tenant

class DirectoryPhotoRepository:
    def __init__(self, db: Session):
        self.db = db

    def resolve_listing(self, identifier: str) -> Optional[Tenant]:
        """A listing is addressed by tenant id or by tenant slug"""
        tenant = self.db.query(Tenant).filter(Tenant.id == identifier).first()
        if tenant:
            return tenant
        return self.db.query(Tenant).filter(Tenant.slug == identifier).first()

    def get_photos(self, listing_id: str) -> List[DirectoryPhoto]:
        return self.db.query(DirectoryPhoto).filter(
            DirectoryPhoto.listing_id == listing_id
        ).order_by(DirectoryPhoto.position, DirectoryPhoto.created_at).all()

    def get_photo(self, listing_id: str, photo_id: str) -> Optional[DirectoryPhoto]:
        return self.db.query(DirectoryPhoto).filter(
            DirectoryPhoto.id == photo_id,
            DirectoryPhoto.listing_id == listing_id
        ).first()

    def get_photo_at(self, listing_id: str, position: int) -> Optional[DirectoryPhoto]:
        return self.db.query(DirectoryPhoto).filter(
            DirectoryPhoto.listing_id == listing_id,
            DirectoryPhoto.position == position
        ).first()

    def count_photos(self, listing_id: str) -> int:
        return self.db.query(func.count(DirectoryPhoto.id)).filter(
            DirectoryPhoto.listing_id == listing_id
        ).scalar() or 0

    def max_position(self, listing_id: str) -> Optional[int]:
        return self.db.query(func.max(DirectoryPhoto.position)).filter(
            DirectoryPhoto.listing_id == listing_id
        ).scalar()

    def create_photo(self, **fields) -> DirectoryPhoto:
        photo = DirectoryPhoto(**fields)
        self.db.add(photo)
        self.db.flush()
        return photo

    def set_position(self, photo: DirectoryPhoto, position: int) -> None:
        """One UPDATE per call; (listing_id, position) is unique at every step"""
        photo.position = position
        self.db.flush()

    def delete_photo(self, photo: DirectoryPhoto) -> None:
        self.db.delete(photo)
        self.db.flush()
