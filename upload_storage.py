"""Upload backends.

Media bytes live either on the local disk or in Supabase Storage. Which one
is decided once at startup by ``create_upload_backend``; request handlers only
see the ``UploadBackend`` interface through ``get_upload_backend``.
"""

import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx
from fastapi import Request

from config import Settings
from errors import StorageError, UploadRejected, ValidationError
from models import BUCKETS

logger = logging.getLogger(__name__)

# MIME type -> extension used for stored files.
ALLOWED_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
LOCAL_UPLOAD_ENDPOINT = "/api/local-upload"


@dataclass
class FileDescriptor:
    name: str
    size: Optional[int] = None
    content_type: Optional[str] = None


@dataclass
class UploadTarget:
    bucket: str
    use_local_upload: bool
    upload_url: Optional[str] = None
    object_path: Optional[str] = None
    local_upload_endpoint: Optional[str] = None
    message: Optional[str] = None
    metadata: dict = field(default_factory=dict)


def validate_bucket(bucket: str) -> str:
    if bucket not in BUCKETS:
        raise ValidationError(f"Invalid bucket. Must be one of: {', '.join(BUCKETS)}")
    return bucket


def validate_image(content_type: Optional[str], size: Optional[int], max_bytes: int) -> str:
    if content_type not in ALLOWED_MIME_TYPES:
        raise UploadRejected(f"Invalid file type. Allowed: {', '.join(ALLOWED_MIME_TYPES)}")
    if size is not None and size > max_bytes:
        raise UploadRejected(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    return ALLOWED_MIME_TYPES[content_type]


def new_object_key(bucket: str, extension: str) -> str:
    # Random names keep client file names out of storage paths.
    return f"{bucket}/{uuid.uuid4().hex}{extension}"


class UploadBackend(ABC):
    name = "abstract"

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    @abstractmethod
    async def request_upload_target(self, descriptor: FileDescriptor, bucket: str) -> UploadTarget:
        ...

    @abstractmethod
    def public_url(self, storage_key: str) -> str:
        ...

    @abstractmethod
    async def delete_object(self, storage_key: str) -> None:
        ...


class LocalUploadBackend(UploadBackend):
    name = "local"

    def __init__(self, root: str | Path, url_prefix: str = "/uploads", max_bytes: int = 10 * 1024 * 1024):
        super().__init__(max_bytes)
        self.root = Path(root).resolve()
        self.url_prefix = "/" + url_prefix.strip("/")

    def ensure_dirs(self) -> None:
        for bucket in BUCKETS:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)

    def resolve(self, storage_key: str) -> Path:
        path = (self.root / storage_key).resolve()
        if path == self.root or self.root not in path.parents:
            raise ValidationError("Invalid storage key")
        return path

    async def request_upload_target(self, descriptor: FileDescriptor, bucket: str) -> UploadTarget:
        validate_bucket(bucket)
        return UploadTarget(
            bucket=bucket,
            use_local_upload=True,
            local_upload_endpoint=LOCAL_UPLOAD_ENDPOINT,
            message=f"Use POST {LOCAL_UPLOAD_ENDPOINT} with multipart/form-data for local file uploads",
            metadata={"name": descriptor.name, "size": descriptor.size, "contentType": descriptor.content_type},
        )

    def save(self, content: bytes, bucket: str, content_type: Optional[str]) -> str:
        """Validate and write an upload; returns its storage key."""
        validate_bucket(bucket)
        extension = validate_image(content_type, len(content), self.max_bytes)
        storage_key = new_object_key(bucket, extension)
        path = self.resolve(storage_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        logger.info(f"Stored upload {storage_key} ({len(content)} bytes)")
        return storage_key

    def public_url(self, storage_key: str) -> str:
        return f"{self.url_prefix}/{storage_key}"

    async def delete_object(self, storage_key: str) -> None:
        self.resolve(storage_key).unlink(missing_ok=True)


class SupabaseUploadBackend(UploadBackend):
    name = "supabase"

    def __init__(
        self,
        url: str,
        service_role_key: str,
        storage_bucket: str,
        max_bytes: int = 10 * 1024 * 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(max_bytes)
        self.url = url.rstrip("/")
        self.service_role_key = service_role_key
        self.storage_bucket = storage_bucket
        self._transport = transport

    def _headers(self, content_type: str | None = None) -> dict:
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    async def request_upload_target(self, descriptor: FileDescriptor, bucket: str) -> UploadTarget:
        validate_bucket(bucket)
        content_type = descriptor.content_type or mimetypes.guess_type(descriptor.name)[0]
        extension = validate_image(content_type, descriptor.size, self.max_bytes)
        object_path = new_object_key(bucket, extension)
        sign_url = f"{self.url}/storage/v1/object/upload/sign/{self.storage_bucket}/{object_path}"

        async with self._client() as client:
            try:
                response = await client.post(sign_url, headers=self._headers(), json={}, timeout=20)
            except httpx.RequestError as exc:
                logger.error(f"Error communicating with Supabase: {exc}")
                raise StorageError() from exc

        if response.status_code not in (200, 201):
            logger.error(f"Failed to create signed upload URL: {response.text}")
            raise StorageError("Failed to generate upload URL")

        signed_path = response.json().get("url")
        if not signed_path:
            raise StorageError("Failed to generate upload URL")

        return UploadTarget(
            bucket=bucket,
            use_local_upload=False,
            upload_url=f"{self.url}/storage/v1{signed_path}",
            object_path=object_path,
            metadata={"name": descriptor.name, "size": descriptor.size, "contentType": content_type},
        )

    def public_url(self, storage_key: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.storage_bucket}/{storage_key}"

    async def delete_object(self, storage_key: str) -> None:
        delete_url = f"{self.url}/storage/v1/object/{self.storage_bucket}/{storage_key}"
        async with self._client() as client:
            try:
                response = await client.delete(delete_url, headers=self._headers(), timeout=20)
            except httpx.RequestError as exc:
                raise StorageError(f"Error communicating with Supabase: {exc}") from exc
        if response.status_code not in (200, 204, 404):
            raise StorageError(f"Failed to delete object from Supabase: {response.text}")


def create_upload_backend(settings: Settings) -> UploadBackend:
    if settings.storage_provider == "supabase":
        if not settings.supabase_configured:
            raise RuntimeError("STORAGE_PROVIDER=supabase requires SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY and SUPABASE_BUCKET")
        return SupabaseUploadBackend(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            settings.SUPABASE_BUCKET,
            max_bytes=settings.MAX_UPLOAD_BYTES,
        )
    backend = LocalUploadBackend(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX, settings.MAX_UPLOAD_BYTES)
    backend.ensure_dirs()
    return backend


def get_upload_backend(request: Request) -> UploadBackend:
    return request.app.state.upload_backend
