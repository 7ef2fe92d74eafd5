"""Uploads to Firebase Cloud Storage."""

from __future__ import annotations

import uuid
from typing import Any

from firebase_admin import storage
from werkzeug.utils import secure_filename

from studyhub.errors import ValidationError

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "heic"}


def is_image(file_storage: Any) -> bool:
    """Return True if an uploaded file looks like an image."""
    mimetype = getattr(file_storage, "mimetype", "") or ""
    filename = getattr(file_storage, "filename", "") or ""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return mimetype.startswith("image/") or extension in IMAGE_EXTENSIONS


def upload_image(folder: str, file_storage: Any) -> str:
    """Upload an image to the default bucket and return its public URL."""
    if not file_storage or not getattr(file_storage, "filename", None):
        raise ValidationError("An image file is required.", reason="missing_file")
    if not is_image(file_storage):
        raise ValidationError("Only image files are allowed.", reason="not_an_image")

    filename = secure_filename(file_storage.filename) or "upload.jpg"
    bucket = storage.bucket()
    blob = bucket.blob(f"{folder}/{uuid.uuid4().hex}_{filename}")
    blob.upload_from_file(file_storage, content_type=file_storage.mimetype)
    blob.make_public()
    return str(blob.public_url)
