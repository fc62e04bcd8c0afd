"""File storage adapters.

The adapter is picked once at startup from ``STORAGE_BACKEND``: local disk for
development, an S3-compatible bucket for production.
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol
from uuid import uuid4

import boto3
import structlog
from botocore.config import Config
from starlette.concurrency import run_in_threadpool

from finwise.config import Settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    """An in-memory upload received from a client."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        """Size of the content in bytes."""
        return len(self.content)


@dataclass(frozen=True)
class UploadResult:
    """Where an uploaded file ended up."""

    url: str
    path: str
    size: int
    mime_type: str


class StorageAdapter(Protocol):
    """Capability every storage backend provides."""

    async def upload(self, file: UploadedFile, folder: str) -> UploadResult: ...

    async def delete(self, path: str) -> None: ...

    def get_public_url(self, path: str) -> str: ...


def _object_key(file: UploadedFile, folder: str) -> str:
    """Random object name under a folder, keeping the original extension."""
    suffix = PurePosixPath(file.filename or "").suffix.lower()
    return f"{folder.strip('/')}/{uuid4()}{suffix}"


class LocalStorageAdapter:
    """Store files on local disk and serve them under ``/uploads``."""

    def __init__(self, upload_dir: str, base_url: str):
        """Initialize with the upload root and the public base URL."""
        self.upload_dir = Path(upload_dir)
        self.base_url = base_url.rstrip("/")

    def _full_path(self, path: str) -> Path:
        full_path = (self.upload_dir / path).resolve()
        if not full_path.is_relative_to(self.upload_dir.resolve()):
            raise ValueError(f"Path escapes upload directory: {path}")
        return full_path

    def _write(self, full_path: Path, content: bytes) -> None:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(content)

    async def upload(self, file: UploadedFile, folder: str) -> UploadResult:
        """Write the file under ``folder`` with a random name."""
        path = _object_key(file, folder)
        await run_in_threadpool(self._write, self._full_path(path), file.content)

        logger.info("file_uploaded", backend="local", path=path, size=file.size)

        return UploadResult(
            url=self.get_public_url(path),
            path=path,
            size=file.size,
            mime_type=file.content_type,
        )

    async def delete(self, path: str) -> None:
        """Delete a stored file; a missing file is not an error."""
        await run_in_threadpool(self._full_path(path).unlink, missing_ok=True)

    def get_public_url(self, path: str) -> str:
        """Public URL for a stored file."""
        return f"{self.base_url}/uploads/{path}"


class S3StorageAdapter:
    """Store files in an S3-compatible bucket."""

    def __init__(self, settings: Settings, client=None):
        """Initialize with bucket settings; a client can be injected."""
        self.bucket = settings.s3_bucket
        self.region = settings.s3_region
        self.public_base_url = settings.s3_public_base_url
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4"),
        )

    async def upload(self, file: UploadedFile, folder: str) -> UploadResult:
        """Put the file in the bucket under ``folder`` with a random name."""
        key = _object_key(file, folder)
        await run_in_threadpool(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=file.content,
            ContentType=file.content_type,
        )

        logger.info("file_uploaded", backend="s3", path=key, size=file.size)

        return UploadResult(
            url=self.get_public_url(key),
            path=key,
            size=file.size,
            mime_type=file.content_type,
        )

    async def delete(self, path: str) -> None:
        """Delete an object from the bucket."""
        await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=path)

    def get_public_url(self, path: str) -> str:
        """Public URL for an object, via the CDN base when configured."""
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"


def build_storage(settings: Settings) -> StorageAdapter:
    """Create the storage adapter selected by configuration."""
    backend = settings.storage_backend.lower()
    if backend == "s3":
        return S3StorageAdapter(settings)
    if backend == "local":
        return LocalStorageAdapter(settings.upload_dir, settings.base_url)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
