import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

import crud, schemas
from auth import require_auth
from database import get_db
from errors import NotFound
from routers.media import delete_media_item
from upload_storage import (
    LocalUploadBackend,
    UploadBackend,
    get_upload_backend,
    validate_bucket,
    validate_image,
)

router = APIRouter(prefix="/api/local-upload", tags=["Media"], dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


def get_local_backend(backend: UploadBackend = Depends(get_upload_backend)) -> LocalUploadBackend:
    if not isinstance(backend, LocalUploadBackend):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Local uploads are disabled. Use /api/media/upload-url.",
        )
    return backend


@router.post("", response_model=schemas.LocalUploadOut, status_code=status.HTTP_201_CREATED)
async def local_upload(
    file: UploadFile = File(...),
    bucket: str = Form(default="blog-images"),
    alt_text: Optional[str] = Form(default=None, alias="altText"),
    db: Session = Depends(get_db),
    backend: LocalUploadBackend = Depends(get_local_backend),
):
    validate_bucket(bucket)
    # Reject on the declared size before reading anything.
    validate_image(file.content_type, file.size, backend.max_bytes)
    content = await file.read(backend.max_bytes + 1)
    storage_key = await run_in_threadpool(backend.save, content, bucket, file.content_type)

    public_url = backend.public_url(storage_key)
    media = crud.create_media(
        db,
        {
            "file_name": Path(storage_key).name,
            "original_name": file.filename or Path(storage_key).name,
            "mime_type": file.content_type,
            "file_size": len(content),
            "storage_key": storage_key,
            "public_url": public_url,
            "bucket": bucket,
            "alt_text": alt_text or None,
        },
    )
    return schemas.LocalUploadOut(**schemas.MediaOut.model_validate(media).model_dump(), url=public_url)


@router.delete("/{media_id}", response_model=schemas.MessageResponse)
async def delete_local_upload(
    media_id: str,
    db: Session = Depends(get_db),
    backend: LocalUploadBackend = Depends(get_local_backend),
):
    media = crud.get_media_by_id(db, media_id)
    if media is None:
        raise NotFound("Media not found")
    await delete_media_item(db, backend, media)
    return {"message": "File deleted"}
