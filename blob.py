import logging
import os
import posixpath
import time
from typing import Optional

import requests
from werkzeug.utils import secure_filename

import settings
from errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


def invoice_path(order_id: str) -> str:
    return f"invoices/{order_id}.pdf"


def product_image_path(filename: str, now: Optional[float] = None) -> str:
    safe = secure_filename(filename or "") or "file"
    return f"products/{int((now or time.time()) * 1000)}-{safe}"


def payment_proof_path(order_id: str, filename: str, ext: str = "webp", now: Optional[float] = None) -> str:
    base = os.path.splitext(secure_filename(filename or ""))[0] or "proof"
    return f"payment-proofs/{order_id}-{int((now or time.time()) * 1000)}-{base}.{ext}"


def _clean_path(path: str) -> str:
    clean = posixpath.normpath(path).lstrip("/")
    if clean.startswith("..") or clean in ("", "."):
        raise ValidationError(f"Invalid blob path: {path}")
    return clean


class HttpBlobStore:
    """Hosted object store addressed by path, written with an authenticated PUT."""

    def __init__(self, token: str, api_url: str = settings.BLOB_API_URL, timeout: float = 30):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def put(self, path: str, data: bytes, content_type: str) -> str:
        path = _clean_path(path)
        headers = {
            "authorization": f"Bearer {self.token}",
            "x-content-type": content_type,
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
        }
        try:
            response = requests.put(f"{self.api_url}/{path}", data=data, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            url = response.json()["url"]
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.error("blob upload failed for %s: %s", path, e)
            raise ExternalServiceError(f"Failed to upload {path}") from e
        logger.info("uploaded %s (%d bytes)", path, len(data))
        return url


class LocalBlobStore:
    """Writes blobs under a directory that the app serves at ``base_url``."""

    def __init__(self, root: str = settings.MEDIA_ROOT, base_url: str = settings.MEDIA_URL):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def put(self, path: str, data: bytes, content_type: str) -> str:
        path = _clean_path(path)
        target = os.path.join(self.root, *path.split("/"))
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error("could not write %s: %s", target, e)
            raise ExternalServiceError(f"Failed to store {path}") from e
        logger.info("stored %s (%d bytes, %s)", path, len(data), content_type)
        return f"{self.base_url}/{path}"


def default_blob_store():
    if settings.BLOB_READ_WRITE_TOKEN:
        return HttpBlobStore(settings.BLOB_READ_WRITE_TOKEN)
    return LocalBlobStore()
