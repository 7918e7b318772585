import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import crud, schemas
from auth import require_auth
from database import get_db
from errors import NotFound, StorageError, ValidationError
from models import AuthorMedia
from upload_storage import FileDescriptor, UploadBackend, get_upload_backend

router = APIRouter(prefix="/api/media", tags=["Media"], dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


async def delete_media_item(db: Session, backend: UploadBackend, media: AuthorMedia) -> None:
    """Drop the metadata row, then make a best-effort attempt at the stored object.

    The row is the source of truth for listings, so a failed object delete
    is logged and left behind rather than undoing the row delete.
    """
    storage_key = media.storage_key
    crud.delete_media(db, media)
    try:
        await backend.delete_object(storage_key)
    except (StorageError, ValidationError, OSError) as exc:
        logger.warning(f"Could not delete stored object {storage_key}: {exc}")


@router.get("", response_model=list[schemas.MediaOut])
def list_media(
    bucket: Optional[schemas.Bucket] = Query(default=None),
    db: Session = Depends(get_db),
):
    return crud.list_media(db, bucket=bucket)


@router.post("/upload-url", response_model=schemas.UploadTargetOut, response_model_exclude_none=True)
async def request_upload_url(
    payload: schemas.UploadUrlRequest,
    backend: UploadBackend = Depends(get_upload_backend),
):
    descriptor = FileDescriptor(name=payload.name, size=payload.size, content_type=payload.content_type)
    target = await backend.request_upload_target(descriptor, payload.bucket)
    return schemas.UploadTargetOut.model_validate(target)


@router.post("/register", response_model=schemas.MediaOut, status_code=status.HTTP_201_CREATED)
def register_media(
    payload: schemas.MediaRegister,
    db: Session = Depends(get_db),
    backend: UploadBackend = Depends(get_upload_backend),
):
    values = payload.model_dump(exclude={"object_path"})
    values["storage_key"] = payload.object_path
    values["public_url"] = backend.public_url(payload.object_path)
    media = crud.create_media(db, values)
    logger.info(f"Registered media {media.id} in {media.bucket}")
    return media


@router.delete("/{media_id}", response_model=schemas.MessageResponse)
async def delete_media(
    media_id: str,
    db: Session = Depends(get_db),
    backend: UploadBackend = Depends(get_upload_backend),
):
    media = crud.get_media_by_id(db, media_id)
    if media is None:
        raise NotFound("Media item not found")
    await delete_media_item(db, backend, media)
    return {"message": "Media deleted"}
