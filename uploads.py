"""
Product image uploads

Images arrive as multipart parts on the admin product routes. Every part is
checked (type, size, count) before anything touches the disk, so a rejected
request leaves no files behind. Accepted images are written under
<uploads>/products and referenced as /uploads/products/<filename>.
"""

import logging
import os
import re
import time
from typing import Iterable, List, Optional

from errors import InvalidDataError, StoreUnavailableError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_IMAGES = 6
PUBLIC_PREFIX = "/uploads/products"


def image_filename(original: str, now_ms: Optional[int] = None) -> str:
    """`<ms timestamp>-<lowercased base, whitespace as dashes><ext>`"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    base, ext = os.path.splitext(os.path.basename(original or ""))
    base = re.sub(r"\s+", "-", base).lower() or "image"
    return f"{now_ms}-{base}{ext.lower()}"


def read_images(files: Optional[Iterable]) -> List[tuple]:
    """Validate the uploaded parts and return (filename, content) pairs."""
    parts = [f for f in (files or []) if f is not None and f.filename]
    if len(parts) > MAX_IMAGES:
        raise InvalidDataError(f"At most {MAX_IMAGES} images can be uploaded")
    images = []
    for part in parts:
        if part.content_type not in ALLOWED_TYPES:
            raise InvalidDataError("Invalid image type")
        content = part.file.read(MAX_IMAGE_BYTES + 1)
        if len(content) > MAX_IMAGE_BYTES:
            raise InvalidDataError("Image is larger than 5 MB")
        images.append((part.filename, content))
    return images


def save_images(images: List[tuple], uploads_dir: str) -> List[str]:
    """Write validated images and return their public paths."""
    target = os.path.join(uploads_dir, "products")
    paths = []
    try:
        os.makedirs(target, exist_ok=True)
        now_ms = int(time.time() * 1000)
        for original, content in images:
            name = image_filename(original, now_ms)
            while os.path.exists(os.path.join(target, name)):
                now_ms += 1
                name = image_filename(original, now_ms)
            with open(os.path.join(target, name), "wb") as fh:
                fh.write(content)
            paths.append(f"{PUBLIC_PREFIX}/{name}")
    except OSError as exc:
        logger.error("Error writing uploaded image to %s: %s", target, exc)
        discard_images(paths, uploads_dir)
        raise StoreUnavailableError("Could not store uploaded images") from exc
    return paths


def discard_images(paths: Iterable[str], uploads_dir: str) -> None:
    """Remove images written for a request that was then rejected."""
    for path in paths:
        name = path.rsplit("/", 1)[-1]
        try:
            os.remove(os.path.join(uploads_dir, "products", name))
        except OSError as exc:
            logger.warning("Could not remove uploaded image %s: %s", name, exc)
