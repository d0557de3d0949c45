"""
Object store for report and attachment blobs.

The core only ever keeps ``path``/``url`` on the owning Disposition; raw bytes
live here. Deleting a blob is the job of whichever component removes the list
entry that owns it.
"""
from abc import ABC, abstractmethod
import hashlib
import hmac
from pathlib import Path
import time
from typing import Iterable, Optional
from urllib.parse import quote, urlencode

import structlog

from dispositions.config import get_settings

logger = structlog.get_logger(__name__)


class ObjectStore(ABC):
    """Abstract base class for blob storage backends."""

    @abstractmethod
    def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        """
        Write ``content`` at ``path``.

        Returns:
            Public URL of the stored object
        """
        ...

    @abstractmethod
    def remove(self, paths: Iterable[str]) -> None:
        """Delete every object in ``paths``. Missing objects are ignored."""
        ...

    @abstractmethod
    def signed_url(self, path: str, ttl: Optional[int] = None) -> str:
        """Time-limited download URL for ``path``. Defaults to ``signed_url_ttl_seconds``."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...


class LocalObjectStore(ObjectStore):
    """
    Local filesystem backend.

    Stores objects under a base directory with the path structure preserved.
    Signed URLs carry an expiry and an HMAC over ``path:expires``.
    """

    def __init__(
        self,
        base_path: Optional[str] = None,
        public_base_url: Optional[str] = None,
        signing_key: Optional[str] = None,
    ):
        settings = get_settings()
        self.base_path = Path(base_path or settings.storage_local_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.storage_public_base_url).rstrip("/")
        self._signing_key = (signing_key or settings.storage_signing_key).encode("utf-8")
        logger.info("local_object_store_initialized", base_path=str(self.base_path))

    def _resolve_path(self, path: str) -> Path:
        resolved = (self.base_path / path).resolve()
        if self.base_path not in resolved.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return resolved

    def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        target = self._resolve_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.debug("object_uploaded", path=path, size_bytes=len(content), content_type=content_type)
        return f"{self.public_base_url}/{quote(path)}"

    def remove(self, paths: Iterable[str]) -> None:
        for path in paths:
            target = self._resolve_path(path)
            if target.exists():
                target.unlink()
                logger.debug("object_removed", path=path)

    def signed_url(self, path: str, ttl: Optional[int] = None) -> str:
        expires = int(time.time()) + (ttl or get_settings().signed_url_ttl_seconds)
        signature = hmac.new(
            self._signing_key, f"{path}:{expires}".encode("utf-8"), hashlib.sha256
        ).hexdigest()
        query = urlencode({"expires": expires, "signature": signature})
        return f"{self.public_base_url}/{quote(path)}?{query}"

    def verify_signature(self, path: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        expected = hmac.new(
            self._signing_key, f"{path}:{expires}".encode("utf-8"), hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected, signature)

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()


def remove_blobs_best_effort(store: ObjectStore, paths: Iterable[str], context: str) -> bool:
    """
    Delete blobs without letting a storage failure escape.

    Returns True when every path was removed.
    """
    paths = [path for path in paths if path]
    if not paths:
        return True
    try:
        store.remove(paths)
    except Exception:
        logger.warning("blob_cleanup_failed", context=context, paths=paths, exc_info=True)
        return False
    logger.info("blob_cleanup_done", context=context, count=len(paths))
    return True
