import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import crud, schemas
from auth import get_optional_session, require_auth
from database import get_db
from errors import NotFound, Unauthenticated
from models import LoginSession

router = APIRouter(prefix="/api/posts", tags=["Posts"])
logger = logging.getLogger(__name__)


def _get_post_or_404(db: Session, id_or_slug: str):
    post = crud.resolve_post(db, id_or_slug)
    if post is None:
        raise NotFound("Post not found")
    return post


@router.get("", response_model=list[schemas.PostOut])
def list_posts(
    published: bool = Query(default=False),
    db: Session = Depends(get_db),
    session: Optional[LoginSession] = Depends(get_optional_session),
):
    # Without ?published=true the listing includes drafts.
    if not published and session is None:
        raise Unauthenticated()
    return crud.list_posts(db, published_only=published)


@router.get("/{id_or_slug}", response_model=schemas.PostOut)
def get_post(
    id_or_slug: str,
    db: Session = Depends(get_db),
    session: Optional[LoginSession] = Depends(get_optional_session),
):
    post = _get_post_or_404(db, id_or_slug)
    if not post.is_published and session is None:
        raise NotFound("Post not found")
    return post


@router.post(
    "",
    response_model=schemas.PostOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_auth)],
)
def create_post(payload: schemas.PostCreate, db: Session = Depends(get_db)):
    post = crud.create_post(db, payload.model_dump())
    logger.info(f"Created post {post.id} ({post.slug})")
    return post


@router.put("/{id_or_slug}", response_model=schemas.PostOut, dependencies=[Depends(require_auth)])
def update_post(id_or_slug: str, payload: schemas.PostUpdate, db: Session = Depends(get_db)):
    post = _get_post_or_404(db, id_or_slug)
    return crud.update_post(db, post, payload.model_dump(exclude_unset=True))


@router.delete("/{id_or_slug}", response_model=schemas.MessageResponse, dependencies=[Depends(require_auth)])
def delete_post(id_or_slug: str, db: Session = Depends(get_db)):
    post = _get_post_or_404(db, id_or_slug)
    crud.delete_post(db, post)
    logger.info(f"Deleted post {post.id}")
    return {"message": "Post deleted"}
