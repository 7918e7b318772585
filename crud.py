"""Database access for the owner, recovery tokens and content tables.

Content helpers commit their own work. Recovery-token helpers only stage
changes so the caller can commit them together with the owner update that
goes with them.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import Conflict
from models import (
    AuthorMedia,
    AuthorPortfolio,
    AuthorPost,
    RecoveryToken,
    SiteOwner,
    utcnow,
)

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200
# PostgreSQL SQLSTATE for unique_violation.
PG_UNIQUE_VIOLATION = "23505"


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    return getattr(orig, "pgcode", None) == PG_UNIQUE_VIOLATION or "UNIQUE constraint failed" in str(orig)


def _commit_unique(db: Session, row: Any, conflict_message: str) -> Any:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not _is_unique_violation(exc):
            raise
        raise Conflict(conflict_message)
    db.refresh(row)
    return row


# Owner

def get_site_owner(db: Session) -> Optional[SiteOwner]:
    return db.query(SiteOwner).first()


def get_site_owner_by_id(db: Session, owner_id: str) -> Optional[SiteOwner]:
    return db.query(SiteOwner).filter(SiteOwner.id == owner_id).first()


def get_site_owner_by_username(db: Session, username: str) -> Optional[SiteOwner]:
    if not username:
        return None
    return db.query(SiteOwner).filter(SiteOwner.username == username).first()


def create_site_owner(
    db: Session,
    *,
    username: str,
    password_hash: str,
    recovery_email: str,
    display_name: Optional[str] = None,
) -> SiteOwner:
    if get_site_owner(db) is not None:
        raise Conflict("Site owner already exists")
    owner = SiteOwner(
        username=username,
        password_hash=password_hash,
        recovery_email=recovery_email,
        display_name=display_name,
    )
    db.add(owner)
    return _commit_unique(db, owner, "Site owner already exists")


# Recovery tokens

def create_recovery_token(
    db: Session,
    *,
    owner_id: str,
    token: str,
    token_type: str,
    expires_at: datetime,
    new_email: Optional[str] = None,
) -> RecoveryToken:
    row = RecoveryToken(
        owner_id=owner_id,
        token=token,
        token_type=token_type,
        expires_at=expires_at,
        new_email=new_email,
    )
    db.add(row)
    return row


def get_valid_recovery_token(
    db: Session,
    token: str,
    token_type: str,
    now: Optional[datetime] = None,
) -> Optional[RecoveryToken]:
    if not token:
        return None
    now = now or utcnow()
    return (
        db.query(RecoveryToken)
        .filter(
            RecoveryToken.token == token,
            RecoveryToken.token_type == token_type,
            RecoveryToken.expires_at > now,
            RecoveryToken.used_at.is_(None),
        )
        .first()
    )


def mark_recovery_token_used(db: Session, row: RecoveryToken, now: Optional[datetime] = None) -> None:
    row.used_at = now or utcnow()


def invalidate_recovery_tokens_for_owner(
    db: Session,
    owner_id: str,
    token_type: str,
    now: Optional[datetime] = None,
) -> int:
    return (
        db.query(RecoveryToken)
        .filter(
            RecoveryToken.owner_id == owner_id,
            RecoveryToken.token_type == token_type,
            RecoveryToken.used_at.is_(None),
        )
        .update({RecoveryToken.used_at: now or utcnow()}, synchronize_session=False)
    )


# Posts

def estimate_read_time(content: str) -> int:
    words = len((content or "").split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def list_posts(db: Session, published_only: bool = False) -> List[AuthorPost]:
    query = db.query(AuthorPost)
    if published_only:
        query = query.filter(AuthorPost.is_published.is_(True))
    return query.order_by(AuthorPost.created_at.desc()).all()


def get_post_by_id(db: Session, post_id: str) -> Optional[AuthorPost]:
    return db.query(AuthorPost).filter(AuthorPost.id == post_id).first()


def get_post_by_slug(db: Session, slug: str) -> Optional[AuthorPost]:
    return db.query(AuthorPost).filter(AuthorPost.slug == slug).first()


def resolve_post(db: Session, id_or_slug: str) -> Optional[AuthorPost]:
    return get_post_by_id(db, id_or_slug) or get_post_by_slug(db, id_or_slug)


def _sync_published_at(post: AuthorPost) -> None:
    # A published post always carries publishedAt; unpublishing keeps the old value.
    if post.is_published and post.published_at is None:
        post.published_at = utcnow()


def create_post(db: Session, values: Dict[str, Any]) -> AuthorPost:
    values = dict(values)
    if values.get("read_time_minutes") is None:
        values["read_time_minutes"] = estimate_read_time(values.get("content", ""))
    post = AuthorPost(**values)
    _sync_published_at(post)
    db.add(post)
    return _commit_unique(db, post, "A post with this slug already exists")


def update_post(db: Session, post: AuthorPost, values: Dict[str, Any]) -> AuthorPost:
    # An explicit null read time, or new content without one, means recompute.
    if values.get("read_time_minutes") is None and ("content" in values or "read_time_minutes" in values):
        content = values["content"] if "content" in values else post.content
        values = {**values, "read_time_minutes": estimate_read_time(content)}
    for key, value in values.items():
        setattr(post, key, value)
    _sync_published_at(post)
    post.updated_at = utcnow()
    return _commit_unique(db, post, "A post with this slug already exists")


def delete_post(db: Session, post: AuthorPost) -> None:
    db.delete(post)
    db.commit()


# Portfolio

def list_portfolio_items(db: Session, published_only: bool = False) -> List[AuthorPortfolio]:
    query = db.query(AuthorPortfolio)
    if published_only:
        query = query.filter(AuthorPortfolio.is_published.is_(True))
    return query.order_by(AuthorPortfolio.sort_order.asc(), AuthorPortfolio.created_at.asc()).all()


def get_portfolio_item_by_id(db: Session, item_id: str) -> Optional[AuthorPortfolio]:
    return db.query(AuthorPortfolio).filter(AuthorPortfolio.id == item_id).first()


def get_portfolio_item_by_slug(db: Session, slug: str) -> Optional[AuthorPortfolio]:
    return db.query(AuthorPortfolio).filter(AuthorPortfolio.slug == slug).first()


def resolve_portfolio_item(db: Session, id_or_slug: str) -> Optional[AuthorPortfolio]:
    return get_portfolio_item_by_id(db, id_or_slug) or get_portfolio_item_by_slug(db, id_or_slug)


def create_portfolio_item(db: Session, values: Dict[str, Any]) -> AuthorPortfolio:
    item = AuthorPortfolio(**values)
    db.add(item)
    return _commit_unique(db, item, "A portfolio item with this slug already exists")


def update_portfolio_item(db: Session, item: AuthorPortfolio, values: Dict[str, Any]) -> AuthorPortfolio:
    for key, value in values.items():
        setattr(item, key, value)
    item.updated_at = utcnow()
    return _commit_unique(db, item, "A portfolio item with this slug already exists")


def delete_portfolio_item(db: Session, item: AuthorPortfolio) -> None:
    db.delete(item)
    db.commit()


# Media

def list_media(db: Session, bucket: Optional[str] = None) -> List[AuthorMedia]:
    query = db.query(AuthorMedia)
    if bucket:
        query = query.filter(AuthorMedia.bucket == bucket)
    return query.order_by(AuthorMedia.created_at.desc()).all()


def get_media_by_id(db: Session, media_id: str) -> Optional[AuthorMedia]:
    return db.query(AuthorMedia).filter(AuthorMedia.id == media_id).first()


def create_media(db: Session, values: Dict[str, Any]) -> AuthorMedia:
    media = AuthorMedia(**values)
    db.add(media)
    return _commit_unique(db, media, "Media with this storage key is already registered")


def delete_media(db: Session, media: AuthorMedia) -> None:
    db.delete(media)
    db.commit()
