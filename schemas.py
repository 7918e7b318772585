from datetime import datetime, timezone
from typing import Annotated, ClassVar, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

Bucket = Literal["blog-images", "portfolio-images", "profile-uploads"]
ContentFormat = Literal["markdown", "html"]
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


def _as_utc(value: datetime) -> datetime:
    # Columns hold naive UTC; responses carry the offset.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]
StoredDateTime = Annotated[datetime, AfterValidator(_to_naive_utc)]


class ApiModel(BaseModel):
    """Wire models use camelCase keys; unknown keys are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class PartialUpdate(ApiModel):
    """Update bodies: only the keys sent are applied; required columns may not be nulled."""

    not_null_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.not_null_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ApiOut(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(BaseModel):
    message: str


# Auth

class LoginRequest(ApiModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1, max_length=256)


class UserPublic(ApiOut):
    id: str
    username: str
    display_name: str | None = None
    recovery_email: str


class UserResponse(BaseModel):
    user: UserPublic


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=8, max_length=256)


class ChangeCredentialsRequest(ApiModel):
    password: str = Field(min_length=1, max_length=256)
    new_username: str | None = Field(default=None, min_length=1, max_length=150)
    new_email: EmailStr | None = None


class PasswordResetRequest(ApiModel):
    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(ApiModel):
    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=256)


# Posts

class PostCreate(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=200, pattern=SLUG_PATTERN)
    excerpt: str | None = None
    content: str
    content_format: ContentFormat = "markdown"
    category: str | None = Field(default=None, max_length=100)
    featured_image_url: str | None = None
    is_published: bool = False
    read_time_minutes: int | None = Field(default=None, ge=1)
    published_at: StoredDateTime | None = None


class PostUpdate(PartialUpdate):
    not_null_fields: ClassVar[tuple[str, ...]] = ("title", "slug", "content", "content_format", "is_published")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=200, pattern=SLUG_PATTERN)
    excerpt: str | None = None
    content: str | None = None
    content_format: ContentFormat | None = None
    category: str | None = Field(default=None, max_length=100)
    featured_image_url: str | None = None
    is_published: bool | None = None
    read_time_minutes: int | None = Field(default=None, ge=1)
    published_at: StoredDateTime | None = None


class PostOut(ApiOut):
    id: str
    title: str
    slug: str
    excerpt: str | None
    content: str
    content_format: str
    category: str | None
    featured_image_url: str | None
    is_published: bool
    read_time_minutes: int
    created_at: UtcDateTime
    updated_at: UtcDateTime
    published_at: UtcDateTime | None


# Portfolio

class PortfolioCreate(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=200, pattern=SLUG_PATTERN)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    year: str | None = Field(default=None, max_length=16)
    image_url: str | None = None
    project_url: str | None = None
    is_published: bool = False
    sort_order: int = 0


class PortfolioUpdate(PartialUpdate):
    not_null_fields: ClassVar[tuple[str, ...]] = ("title", "slug", "is_published", "sort_order")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=200, pattern=SLUG_PATTERN)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    year: str | None = Field(default=None, max_length=16)
    image_url: str | None = None
    project_url: str | None = None
    is_published: bool | None = None
    sort_order: int | None = None


class PortfolioOut(ApiOut):
    id: str
    title: str
    slug: str
    description: str | None
    category: str | None
    year: str | None
    image_url: str | None
    project_url: str | None
    is_published: bool
    sort_order: int
    created_at: UtcDateTime
    updated_at: UtcDateTime


# Media

class UploadUrlRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    size: int | None = Field(default=None, ge=0)
    content_type: str | None = Field(default=None, max_length=100)
    bucket: Bucket = "blog-images"


class UploadTargetOut(ApiOut):
    bucket: str
    use_local_upload: bool
    upload_url: str | None = None
    object_path: str | None = None
    local_upload_endpoint: str | None = None
    message: str | None = None
    metadata: dict | None = None


class MediaRegister(ApiModel):
    object_path: str = Field(min_length=1, max_length=512)
    file_name: str = Field(min_length=1, max_length=255)
    original_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=100)
    file_size: int = Field(default=0, ge=0)
    bucket: Bucket
    alt_text: str | None = Field(default=None, max_length=500)


class MediaOut(ApiOut):
    id: str
    file_name: str
    original_name: str
    mime_type: str
    file_size: int
    storage_key: str
    public_url: str
    bucket: str
    alt_text: str | None
    created_at: UtcDateTime


class LocalUploadOut(MediaOut):
    url: str
