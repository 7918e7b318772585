import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)

from database import Base

BUCKETS = ("blog-images", "portfolio-images", "profile-uploads")
TOKEN_PASSWORD_RESET = "password_reset"
TOKEN_EMAIL_CHANGE = "email_change"


def utcnow() -> datetime:
    # Stored naive; every timestamp in the database is UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class SiteOwner(Base):
    __tablename__ = "site_owner"
    __table_args__ = (CheckConstraint("singleton = 1", name="ck_site_owner_singleton"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    # Always 1; the unique constraint keeps the table to a single row.
    singleton = Column(Integer, nullable=False, unique=True, default=1)
    username = Column(String(150), unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    recovery_email = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class LoginSession(Base):
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)
    owner_id = Column(String(36), ForeignKey("site_owner.id", ondelete="CASCADE"), nullable=False, index=True)
    username = Column(String(150), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class RecoveryToken(Base):
    __tablename__ = "recovery_tokens"
    __table_args__ = (
        CheckConstraint(
            f"token_type IN ('{TOKEN_PASSWORD_RESET}', '{TOKEN_EMAIL_CHANGE}')",
            name="ck_recovery_tokens_type",
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    owner_id = Column(String(36), ForeignKey("site_owner.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False)
    token_type = Column(String(32), nullable=False)
    new_email = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class AuthorPost(Base):
    __tablename__ = "author_posts"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    slug = Column(String(200), unique=True, nullable=False)
    excerpt = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    content_format = Column(String(16), default="markdown", nullable=False)
    category = Column(String(100), nullable=True)
    featured_image_url = Column(String, nullable=True)
    is_published = Column(Boolean, default=False, nullable=False)
    read_time_minutes = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    published_at = Column(DateTime, nullable=True)


class AuthorPortfolio(Base):
    __tablename__ = "author_portfolio"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    slug = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    year = Column(String(16), nullable=True)
    image_url = Column(String, nullable=True)
    project_url = Column(String, nullable=True)
    is_published = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuthorMedia(Base):
    __tablename__ = "author_media"

    id = Column(String(36), primary_key=True, default=_new_id)
    file_name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)
    storage_key = Column(String(512), unique=True, nullable=False)
    public_url = Column(String, nullable=False)
    bucket = Column(String(32), nullable=False, index=True)
    alt_text = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
