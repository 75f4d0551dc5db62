"""
Local blob storage for slip photos, invoices and adjustment evidence

Downloads go through short-lived HMAC-signed URLs so stored paths are never
exposed as permanent links.
"""
from pathlib import Path
from typing import Optional
from urllib.parse import quote
import hashlib
import hmac
import logging
import time
import uuid

from app.core.config import settings
from app.core.exceptions import ExternalServiceFailure, ValidationError

logger = logging.getLogger(__name__)

BUCKET_SLIPS = "urgent-purchase-slips"
BUCKET_INVOICES = "invoices"
BUCKET_ADJUSTMENTS = "adjustment-photos"


class LocalBlobStorage:
    SERVICE_NAME = "storage"

    def __init__(self, root: Optional[str] = None, signing_key: Optional[str] = None):
        self.root = Path(root or settings.DATA_PATH).resolve()
        self.signing_key = (signing_key or settings.STORAGE_SIGNING_KEY).encode("utf-8")

    def _resolve(self, path: str) -> Path:
        """Map a stored relative path to disk, refusing anything outside the root"""
        if not path or path.startswith("/") or "\\" in path:
            raise ValidationError(f"Invalid storage path: {path!r}")
        full = (self.root / path).resolve()
        if self.root not in full.parents:
            raise ValidationError(f"Invalid storage path: {path!r}")
        return full

    def upload(self, bucket: str, filename: str, data: bytes) -> str:
        """Store bytes under a fresh name; returns the relative path"""
        if not data:
            raise ValidationError("Cannot store an empty file")
        suffix = Path(filename or "").suffix.lower()[:10]
        path = f"{bucket}/{uuid.uuid4().hex}{suffix}"
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise ExternalServiceFailure(self.SERVICE_NAME, f"upload failed: {e}")
        logger.info(f"Stored {len(data)} bytes at {path}")
        return path

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise ValidationError(f"Stored file not found: {path}")
        return target.read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        try:
            target.unlink()
        except OSError as e:
            raise ExternalServiceFailure(self.SERVICE_NAME, f"delete failed: {e}")
        logger.info(f"Deleted stored file {path}")
        return True

    # ========== Signed URLs ==========

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self.signing_key, message, hashlib.sha256).hexdigest()

    def get_signed_download_url(self, path: str, ttl_seconds: Optional[int] = None, now: Optional[float] = None) -> str:
        self._resolve(path)
        ttl = settings.SIGNED_URL_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        expires = int((now if now is not None else time.time()) + ttl)
        signature = self._sign(path, expires)
        return (
            f"{settings.APP_BASE_URL}/api/files/{quote(path)}"
            f"?expires={expires}&signature={signature}"
        )

    def verify_signature(self, path: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
        current = now if now is not None else time.time()
        if expires < current:
            return False
        return hmac.compare_digest(self._sign(path, expires), signature or "")


_storage: Optional[LocalBlobStorage] = None


def get_storage() -> LocalBlobStorage:
    global _storage
    if _storage is None:
        _storage = LocalBlobStorage()
    return _storage
