"""
Local Blob Storage

Filesystem-backed bucket store used for report exports and uploaded files.
Every path is resolved under the configured root; anything that would
escape it is rejected.
"""
from pathlib import Path
from typing import Optional

from config.settings import settings
from src.gridrisk.exceptions import StorageError, StoredFileNotFoundError
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)


class LocalBlobStore:
    """
    Stores named byte payloads under <root>/<bucket>/<path>.

    Args:
        root: Storage root directory (defaults to settings.blob_storage_root)
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.blob_storage_root).resolve()

    def _resolve(self, bucket: str, path: str) -> Path:
        if not bucket or not path:
            raise StorageError("Bucket and path are required")
        target = (self.root / bucket / path).resolve()
        bucket_root = (self.root / bucket).resolve()
        if bucket_root.parent != self.root or bucket_root not in target.parents:
            raise StorageError(f"Path escapes storage root: {bucket}/{path}")
        return target

    def put(self, bucket: str, path: str, data: bytes, overwrite: bool = False) -> str:
        """
        Write a payload.

        Args:
            bucket: Bucket name
            path: Path inside the bucket
            data: Payload bytes
            overwrite: Replace an existing blob

        Returns:
            Retrieval path of the form '<bucket>/<path>'
        """
        target = self._resolve(bucket, path)
        if target.exists() and not overwrite:
            raise StorageError(f"Blob already exists: {bucket}/{path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write blob {bucket}/{path}: {e}") from e

        logger.info("blob_stored", bucket=bucket, path=path, size=len(data))
        return f"{bucket}/{path}"

    def get(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise StoredFileNotFoundError(f"Blob not found: {bucket}/{path}")
        return target.read_bytes()

    def delete(self, bucket: str, path: str) -> bool:
        """
        Remove a payload.

        Returns:
            True if a blob was removed, False if none existed
        """
        target = self._resolve(bucket, path)
        if not target.is_file():
            logger.warning("blob_delete_not_found", bucket=bucket, path=path)
            return False
        target.unlink()
        logger.info("blob_deleted", bucket=bucket, path=path)
        return True
