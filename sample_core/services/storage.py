# sample_core/services/storage.py
from __future__ import annotations

import logging

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)


class BlobStore:
    """
    Byte storage for generated documents, on top of a Django storage backend.
    Paths are content-addressed, so an existing path already holds these bytes.
    """

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def exists(self, path: str) -> bool:
        return bool(path) and self.storage.exists(path)

    def store(self, path: str, data: bytes) -> str:
        if self.storage.exists(path):
            logger.info("Blob %s already stored; skipping write", path)
            return path
        saved = self.storage.save(path, ContentFile(data))
        if saved != path:
            # Backend renamed the file; the recorded path must be the real one.
            logger.warning("Storage saved %s as %s", path, saved)
        return saved

    def get(self, path: str) -> bytes:
        with self.storage.open(path, "rb") as fh:
            return fh.read()
