"""
File Service

User file uploads: bytes go to the blob store, metadata to the files table.
"""
import re
import time
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from src.gridrisk.db.models import StoredFile
from src.gridrisk.db.repository import StoredFileRepository
from src.gridrisk.exceptions import StorageError, StoredFileNotFoundError
from src.gridrisk.storage.blob import LocalBlobStore
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(file_name: str) -> str:
    """Reduce a client-supplied name to a single safe path segment."""
    base = file_name.replace("\\", "/").split("/")[-1]
    cleaned = _UNSAFE_NAME.sub("_", base).strip("._")
    if not cleaned:
        raise StorageError(f"Unusable file name: {file_name!r}")
    return cleaned


class FileService:
    """
    Upload, list, download and delete stored files.

    Args:
        blob_store: Blob store holding the file bytes
    """

    def __init__(self, blob_store: LocalBlobStore):
        self.blob_store = blob_store
        self.files = StoredFileRepository()

    def upload(
        self,
        session: Session,
        user_id: str,
        bucket: str,
        file_name: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> StoredFile:
        """
        Store a file under '<user_id>/<epoch millis>-<file name>' and record it.
        """
        path = f"{safe_file_name(user_id)}/{int(time.time() * 1000)}-{safe_file_name(file_name)}"
        self.blob_store.put(bucket, path, data)

        record = self.files.create(
            session,
            user_id=user_id,
            bucket_id=bucket,
            file_path=path,
            original_name=file_name,
            file_size=len(data),
            mime_type=mime_type,
            description=description,
            tags=list(tags or []),
        )
        logger.info("file_uploaded", file_id=record.id, user_id=user_id, bucket=bucket, size=len(data))
        return record

    def list(
        self,
        session: Session,
        user_id: Optional[str] = None,
        bucket: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        limit: int = 50,
    ) -> List[StoredFile]:
        """
        List files newest first. With tags, keeps files sharing at least one tag.
        """
        records = self.files.list_files(session, user_id=user_id, bucket_id=bucket, limit=None if tags else limit)
        if tags:
            wanted = set(tags)
            records = [r for r in records if wanted.intersection(r.tags or [])][:limit]
        return records

    def download(self, session: Session, file_id: str) -> Tuple[StoredFile, bytes]:
        record = self.files.get_by_id(session, file_id)
        if record is None:
            raise StoredFileNotFoundError(f"File {file_id} not found")
        return record, self.blob_store.get(record.bucket_id, record.file_path)

    def delete(self, session: Session, file_id: str, user_id: str) -> bool:
        """
        Delete a file owned by the user.

        Raises:
            StoredFileNotFoundError: No such file for this user
        """
        record = self.files.get_by_id(session, file_id)
        if record is None or record.user_id != user_id:
            raise StoredFileNotFoundError(f"File {file_id} not found")

        self.blob_store.delete(record.bucket_id, record.file_path)
        self.files.delete(session, file_id)
        logger.info("file_deleted", file_id=file_id, user_id=user_id)
        return True
