# public object storage for product images, kept on the local filesystem
import asyncio
import os
import secrets
import shutil
import string
from pathlib import Path
from typing import Optional

from db.errors import ValidationError
from utils import settings
from utils.logger import get_logger
from utils.pure import image_extension

_logger = get_logger(__name__)

_NAME_ALPHABET = string.ascii_lowercase + string.digits
_NAME_LENGTH = 13


def _random_name(ext: str) -> str:
    stem = "".join(secrets.choice(_NAME_ALPHABET) for _ in range(_NAME_LENGTH))
    return f"{stem}.{ext}"


def _bucket_dir(bucket: str) -> str:
    return os.path.join(settings.STORAGE_DIR, bucket)


def public_url(bucket: str, name: str) -> str:
    """URL under STORAGE_PUBLIC_URL when set, otherwise a file:// URI."""
    if settings.STORAGE_PUBLIC_URL:
        return f"{settings.STORAGE_PUBLIC_URL.rstrip('/')}/{bucket}/{name}"
    return Path(_bucket_dir(bucket), name).resolve().as_uri()


def _copy_exclusive(source: str, bucket_dir: str, ext: str) -> str:
    os.makedirs(bucket_dir, exist_ok=True)
    while True:
        name = _random_name(ext)
        try:
            # "xb" refuses to overwrite an existing object
            with open(source, "rb") as src, open(os.path.join(bucket_dir, name), "xb") as dst:
                shutil.copyfileobj(src, dst)
            return name
        except FileExistsError:
            continue


async def upload_image(source_path: str, bucket: Optional[str] = None) -> str:
    """
    Store an image under a generated name and return its public URL.
    Only png, jpg, jpeg and webp files are accepted.
    """
    bucket = bucket or settings.STORAGE_BUCKET
    ext = image_extension(os.path.basename(source_path or ""))
    if not ext:
        raise ValidationError("Only PNG, JPG and WEBP images are supported.")
    if not os.path.isfile(source_path):
        raise ValidationError(f"File not found: {source_path}")

    name = await asyncio.to_thread(_copy_exclusive, source_path, _bucket_dir(bucket), ext)
    _logger.info(f"Uploaded {os.path.basename(source_path)} as {bucket}/{name}")
    return public_url(bucket, name)
