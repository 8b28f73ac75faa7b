"""
Image uploads

Dish and avatar images are hosted on Cloudinary; only the returned URL is stored.
"""

import logging

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi import HTTPException

import config

logger = logging.getLogger(__name__)

cloudinary.config(
    cloud_name=config.CLOUDINARY_CLOUD_NAME,
    api_key=config.CLOUDINARY_API_KEY,
    api_secret=config.CLOUDINARY_API_SECRET,
    secure=True,
)


def upload_image(content: bytes, filename: str = "") -> str:
    if not content:
        raise HTTPException(status_code=400, detail="No image file provided.")
    try:
        result = cloudinary.uploader.upload(content, folder=config.CLOUDINARY_FOLDER, resource_type="image")
    except CloudinaryError:
        logger.exception("Upload of %r to Cloudinary failed", filename)
        raise HTTPException(status_code=502, detail="Image upload failed.")
    url = result.get("secure_url")
    if not url:
        logger.error("Cloudinary returned no URL for %r: %s", filename, result)
        raise HTTPException(status_code=502, detail="Image upload failed.")
    return url
