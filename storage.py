import logging
from typing import BinaryIO, Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

import config
from errors import UpstreamFailure

logger = logging.getLogger(__name__)


class ImageStore:
    """Cloudinary-backed image hosting. Returns the stored public id and https URL."""

    def __init__(self, cloud_name: Optional[str], api_key: Optional[str], api_secret: Optional[str],
                 folder: str = config.CLOUDINARY_FOLDER):
        self.folder = folder
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, file: BinaryIO, subfolder: str = "") -> dict:
        folder = f"{self.folder}/{subfolder}" if subfolder else self.folder
        try:
            result = cloudinary.uploader.upload(file, folder=folder, resource_type="image")
        except CloudinaryError as e:
            logger.error(f"Image upload to {folder} failed: {e}")
            raise UpstreamFailure("Failed to upload image", details=str(e))
        logger.info(f"Uploaded image {result.get('public_id')} to {folder}")
        return {"imageId": result["public_id"], "imageURL": result["secure_url"]}

    def delete(self, image_id: str):
        try:
            cloudinary.uploader.destroy(image_id)
        except CloudinaryError as e:
            raise UpstreamFailure("Failed to delete image", details=str(e))


def get_image_store() -> ImageStore:
    return ImageStore(
        config.CLOUDINARY_CLOUD_NAME,
        config.CLOUDINARY_API_KEY,
        config.CLOUDINARY_API_SECRET,
    )
