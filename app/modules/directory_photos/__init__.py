# app/modules/directory_photos/__init__.py
"""
Directory photos module - listing photo galleries

- Up to 10 photos per listing, 0-based contiguous positions
- Swap, bulk reorder, delete with re-pack and position repair

Architecture:
- router.py: photo endpoints
- service.py: position management
- repository.py: data access
- schemas.py: request/response models
"""

from .router import router
from .service import DirectoryPhotoService
from .repository import DirectoryPhotoRepository

__all__ = [
    "router",
    "DirectoryPhotoService",
    "DirectoryPhotoRepository"
]
