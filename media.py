"""
Product image hosting on Cloudinary
"""

import logging
import os
from typing import Dict

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile

logger = logging.getLogger(__name__)

CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "marvel-store")
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_IMAGES = 5

cloudinary.config(
    cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
    api_key=os.getenv("CLOUDINARY_API_KEY"),
    api_secret=os.getenv("CLOUDINARY_API_SECRET"),
    secure=True,
)


def upload_image(upload: UploadFile) -> Dict[str, str]:
    result = cloudinary.uploader.upload(
        upload.file,
        folder=CLOUDINARY_FOLDER,
        resource_type="image",
        transformation=[{"width": 1000, "height": 1000, "crop": "limit"}],
    )
    logger.info(f"Uploaded {upload.filename} as {result['public_id']}")
    return {"url": result["secure_url"], "publicId": result["public_id"]}


def destroy_image(public_id: str) -> None:
    result = cloudinary.uploader.destroy(public_id)
    logger.info(f"Evicted image {public_id}: {result.get('result')}")
