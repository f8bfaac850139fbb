"""File storage for uploaded screenshots."""

from __future__ import annotations

import os
import re
import shutil
import uuid
from pathlib import Path

from fastapi import UploadFile

from codeshot.core.config import get_settings
from codeshot.core.errors import ImageNotFoundError

URL_PREFIX = "/uploads/"

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}
MIME_TYPES = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def uploads_dir() -> Path:
    return Path(get_settings().uploads_dir)


def sanitize_filename(filename: str | None) -> str:
    """Keep the client's name (its digits drive ordering) minus path parts."""
    name = os.path.basename((filename or "").replace("\\", "/"))
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    if not name:
        name = "image"
    if os.path.splitext(name)[1].lower() not in ALLOWED_EXTENSIONS:
        name = f"{name}.jpg"
    return name


def validate_image_filename(filename: str | None) -> None:
    if not filename or not filename.strip():
        raise ValueError("Every image needs a filename.")
    ext = os.path.splitext(filename)[1].lower()
    if ext and ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Unsupported image type '{ext}'.")


def save_uploaded_image(storage_prefix: str, file: UploadFile) -> str:
    """Save an upload to {uploads}/{prefix}/{random}/{filename}.

    Args:
        storage_prefix: Batch directory, relative to the uploads root
        file: FastAPI UploadFile object

    Returns:
        Image reference of the form /uploads/{prefix}/{random}/{filename}
    """
    relative = f"{storage_prefix}/{uuid.uuid4().hex[:8]}/{sanitize_filename(file.filename)}"
    file_path = uploads_dir() / relative
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, "wb") as dest:
        content = file.file.read()
        dest.write(content)

    file.file.seek(0)

    return URL_PREFIX + relative


def resolve_image_path(ref: str) -> Path:
    """Map an image reference to a local path.

    Accepts /uploads/... refs, URLs containing /uploads/, and plain paths.
    """
    if ref.startswith(URL_PREFIX):
        return uploads_dir() / ref[len(URL_PREFIX):]
    marker = ref.find(URL_PREFIX)
    if marker != -1:
        return uploads_dir() / ref[marker + len(URL_PREFIX):]
    return Path(ref)


def load_image_bytes(ref: str) -> bytes:
    path = resolve_image_path(ref)
    if not path.is_file():
        raise ImageNotFoundError(ref)
    content = path.read_bytes()
    if not content:
        raise ImageNotFoundError(ref)
    return content


def detect_mime_type(ref: str) -> str:
    ext = os.path.splitext(ref.split("?", 1)[0])[1].lower()
    return MIME_TYPES.get(ext, "image/jpeg")


def cleanup_batch_files(storage_prefix: str) -> None:
    """Remove a batch's upload directory.

    Call on successful processing only; retain files on failure for debugging.

    Args:
        storage_prefix: Batch directory, relative to the uploads root
    """
    batch_dir = uploads_dir() / storage_prefix
    if batch_dir.exists():
        shutil.rmtree(batch_dir)


def delete_images(refs: list[str]) -> None:
    """Remove stored images whose refs were never recorded."""
    for ref in refs:
        resolve_image_path(ref).unlink(missing_ok=True)
