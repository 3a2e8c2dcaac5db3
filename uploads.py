import logging
import os
import secrets
import time
from typing import Optional

from fastapi import HTTPException, UploadFile

from config import Config

logger = logging.getLogger(__name__)

BANNER_DIR = "banners"
URL_PREFIX = "/uploads/"


def banner_folder() -> str:
    folder = os.path.join(Config.UPLOAD_FOLDER, BANNER_DIR)
    os.makedirs(folder, exist_ok=True)
    return folder


def save_banner_image(image: UploadFile) -> str:
    """Write an uploaded banner image to disk and return its public URL."""
    ext = os.path.splitext(image.filename or "")[1].lower().lstrip(".")
    content_type = (image.content_type or "").lower()
    if ext not in Config.ALLOWED_IMAGE_EXTENSIONS or content_type.split("/")[-1] not in Config.ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only images are allowed (jpeg, jpg, png, gif)")
    data = image.file.read(Config.MAX_BANNER_BYTES + 1)
    if len(data) > Config.MAX_BANNER_BYTES:
        raise HTTPException(status_code=413, detail="Banner image is too large")
    filename = f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}.{ext}"
    with open(os.path.join(banner_folder(), filename), "wb") as fh:
        fh.write(data)
    return f"{URL_PREFIX}{BANNER_DIR}/{filename}"


def image_path(image_url: str) -> Optional[str]:
    if not image_url or not image_url.startswith(URL_PREFIX):
        return None
    relative = image_url[len(URL_PREFIX):]
    root = os.path.abspath(Config.UPLOAD_FOLDER)
    path = os.path.abspath(os.path.join(root, relative))
    if not path.startswith(root + os.sep):
        return None
    return path


def remove_banner_image(image_url: str) -> None:
    """Delete a stored banner image; failures are logged, never raised."""
    path = image_path(image_url)
    if not path:
        return
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Failed to remove banner image {path}: {e}")
