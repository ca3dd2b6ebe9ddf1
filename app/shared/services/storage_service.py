# app/shared/services/storage_service.py

from fastapi import Request
import cloudinary
import cloudinary.uploader
from app.config.settings import settings
from app.core.errors import ApiError, ValidationError
from typing import Optional
import re
import uuid
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

class StorageService:
    """
    Object storage for photo binaries (Cloudinary).

    Only the returned URLs are persisted; binaries live in the bucket.
    Constructed once at startup and handed to routes through a dependency.
    """

    def __init__(self):
        if not all([settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret]):
            logger.warning("⚠️ Cloudinary is not fully configured, uploads are disabled")
            self.configured = False
            return

        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True
        )
        self.configured = True
        logger.info("✅ Cloudinary configured")

    def upload_bytes(
        self,
        content: bytes,
        folder: str,
        filename: str,
        content_type: Optional[str] = None
    ) -> str:
        """
        Upload an image and return its public URL

        Raises:
            ValidationError: wrong content type or too large
            ApiError: storage not configured or upload failure
        """
        if not self.configured:
            raise ApiError(
                "Server is not configured for direct uploads",
                error="storage_not_configured"
            )

        if content_type and content_type not in settings.allowed_image_formats:
            raise ValidationError(f"Unsupported image type {content_type}", error="invalid_image")

        if len(content) > settings.max_image_size:
            raise ValidationError(
                f"Image must not exceed {settings.max_image_size // (1024 * 1024)}MB",
                error="image_too_large"
            )

        file_id = str(uuid.uuid4())[:8]
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        public_id = f"{self._sanitize_filename(filename)}_{timestamp}_{file_id}"

        logger.info(f"📤 Uploading image: {folder}/{public_id}")

        try:
            result = cloudinary.uploader.upload(
                content,
                public_id=public_id,
                folder=f"{settings.cloudinary_folder}/{folder}",
                resource_type="image",
                overwrite=False,
                unique_filename=True,
                use_filename=False
            )
        except Exception as e:
            logger.error(f"❌ Error uploading image to Cloudinary: {str(e)}")
            raise ApiError(f"Error uploading image: {str(e)}", error="upload_failed")

        if 'secure_url' not in result:
            raise ApiError("Storage did not return a URL", error="upload_failed")

        logger.info(f"✅ Image uploaded: {result['secure_url']} ({result.get('bytes', 0)} bytes)")
        return result["secure_url"]

    def delete_by_url(self, image_url: str) -> bool:
        """Best-effort removal of a stored image; never raises"""
        if not self.configured:
            logger.warning("⚠️ Cloudinary not configured, cannot delete image")
            return False

        try:
            public_id = self.extract_public_id(image_url)
            if not public_id:
                logger.warning(f"⚠️ Could not extract public_id from URL: {image_url}")
                return False

            logger.info(f"🗑️ Deleting image: {public_id}")
            result = cloudinary.uploader.destroy(public_id)
            success = result.get("result") == "ok"
            if not success:
                logger.warning(f"⚠️ Could not delete image: {public_id} - {result}")
            return success

        except Exception as e:
            logger.error(f"❌ Error deleting image: {str(e)}")
            return False

    @staticmethod
    def extract_public_id(image_url: str) -> Optional[str]:
        """
        Public id of a Cloudinary URL

        Format: https://res.cloudinary.com/[cloud]/image/upload/[transformations/]v[version]/[public_id].[format]
        """
        if not image_url or "cloudinary.com" not in image_url:
            return None

        parts = image_url.split("/")
        if "upload" not in parts:
            return None

        filtered_parts = []
        for part in parts[parts.index("upload") + 1:]:
            # transformations (c_fit,w_800,...) and version segments
            if re.match(r"^(c|w|h|q|f|g|e|ar)_", part):
                continue
            if re.match(r"^v\d+$", part):
                continue
            filtered_parts.append(part)

        if not filtered_parts:
            return None

        public_id = "/".join(filtered_parts)
        if "." in filtered_parts[-1]:
            public_id = public_id.rsplit(".", 1)[0]
        return public_id

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        sanitized = re.sub(r'[^a-zA-Z0-9_-]', '_', filename.rsplit(".", 1)[0])[:50]
        return sanitized or "photo"


def get_storage_service(request: Request) -> StorageService:
    """Instance constructed in the application lifespan"""
    return request.app.state.storage_service
