# storage.py
import os
import uuid
from flask import current_app
from werkzeug.utils import secure_filename

from errors import RemoteError, ValidationError
from utils import log

PRODUCT_IMAGES = "product-images"
BRAND_ASSETS = "brand-assets"
BUCKETS = (PRODUCT_IMAGES, BRAND_ASSETS)
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "svg"}


def bucket_path(bucket):
    if bucket not in BUCKETS:
        raise ValidationError(f"Unknown bucket '{bucket}'")
    return os.path.join(current_app.config["UPLOAD_FOLDER"], bucket)


def public_url(bucket, filename):
    return f"/uploads/{bucket}/{filename}"


def upload(bucket, file_storage):
    """Store an uploaded file and return its public URL."""
    name = secure_filename(file_storage.filename or "")
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Unsupported image type", {"file": "Allowed: " + ", ".join(sorted(ALLOWED_EXTENSIONS))})
    filename = f"{uuid.uuid4().hex}.{ext}"
    folder = bucket_path(bucket)
    try:
        os.makedirs(folder, exist_ok=True)
        file_storage.save(os.path.join(folder, filename))
    except OSError as e:
        log(f"storage upload error bucket={bucket}: {e}")
        raise RemoteError("Failed to upload image. Please try again.")
    log(f"Uploaded {bucket}/{filename}")
    return public_url(bucket, filename)


def remove(bucket, url):
    """Best-effort delete of a file previously returned by upload().

    URLs that do not point into the bucket (external images) are ignored.
    Returns True when a file was deleted.
    """
    prefix = public_url(bucket, "")
    if not url or not url.startswith(prefix):
        return False
    filename = secure_filename(url[len(prefix):])
    if not filename:
        return False
    try:
        os.remove(os.path.join(bucket_path(bucket), filename))
        return True
    except OSError as e:
        log(f"storage remove skipped {bucket}/{filename}: {e}")
        return False
