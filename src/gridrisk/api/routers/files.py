"""
Files Router

Endpoints for uploading, listing, downloading and deleting stored files.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from src.gridrisk.api.dependencies import get_blob_store, get_db, get_user_id
from src.gridrisk.api.schemas import StoredFileOut
from src.gridrisk.storage.blob import LocalBlobStore
from src.gridrisk.storage.files import FileService

router = APIRouter(prefix="/api/v1/files", tags=["files"])


def get_file_service(blob_store: LocalBlobStore = Depends(get_blob_store)) -> FileService:
    return FileService(blob_store)


@router.post("/", response_model=StoredFileOut, status_code=201)
def upload_file(
    upload: UploadFile = File(...),
    bucket: str = Form("uploads"),
    description: Optional[str] = Form(None),
    tags: List[str] = Form([]),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    record = service.upload(
        db,
        user_id=user_id,
        bucket=bucket,
        file_name=upload.filename or "upload",
        data=upload.file.read(),
        mime_type=upload.content_type or "application/octet-stream",
        description=description,
        tags=tags,
    )
    db.commit()
    return StoredFileOut.model_validate(record)


@router.get("/", response_model=List[StoredFileOut])
def list_files(
    bucket: Optional[str] = Query(None),
    tag: List[str] = Query([], description="Keep files with any of these tags"),
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    records = service.list(db, user_id=user_id, bucket=bucket, tags=tag, limit=limit)
    return [StoredFileOut.model_validate(r) for r in records]


@router.get("/{file_id}")
def download_file(
    file_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    record, data = service.download(db, file_id)
    return Response(
        content=data,
        media_type=record.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{record.file_path.split("/")[-1]}"'},
    )


@router.delete("/{file_id}", status_code=204)
def delete_file(
    file_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    service.delete(db, file_id, user_id)
    db.commit()
