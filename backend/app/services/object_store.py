"""
Object store gateway - opaque blobs in purpose-named GridFS buckets.
"""

import asyncio
import os
import uuid
from typing import Dict, Optional

from gridfs import GridFS
from gridfs.errors import NoFile

from app.config import logger
from app.models.session import DocumentKind

BUCKETS = tuple(DocumentKind.BUCKETS.values())


def generate_object_key(filename: str) -> str:
    """Collision-resistant key: <uuid4>.<original extension>"""
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    return f"{uuid.uuid4()}.{ext or 'bin'}"


class ObjectStore:
    """Upload/download blobs keyed by bucket + key. Sync GridFS calls run in a worker thread."""

    def __init__(self, sync_db):
        self._buckets: Dict[str, GridFS] = {
            name: GridFS(sync_db, collection=name) for name in BUCKETS
        }

    def _bucket(self, bucket: str) -> GridFS:
        if bucket not in self._buckets:
            raise ValueError(f"Unknown bucket: {bucket}")
        return self._buckets[bucket]

    async def upload(self, bucket: str, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        fs = self._bucket(bucket)
        await asyncio.to_thread(fs.put, data, filename=key, content_type=content_type)
        logger.info(f"Stored {key} in {bucket} ({len(data)} bytes)")
        return key

    async def download(self, bucket: str, key: str) -> Optional[bytes]:
        """Return the blob bytes, or None when the key does not exist."""
        fs = self._bucket(bucket)

        def _read():
            try:
                return fs.get_last_version(filename=key).read()
            except NoFile:
                return None

        return await asyncio.to_thread(_read)

    async def exists(self, bucket: str, key: str) -> bool:
        fs = self._bucket(bucket)
        return await asyncio.to_thread(fs.exists, filename=key)
