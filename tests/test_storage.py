"""Tests for the storage adapters."""

from unittest.mock import MagicMock

import pytest

from finwise.config import settings
from finwise.services.storage_service import (
    LocalStorageAdapter,
    S3StorageAdapter,
    UploadedFile,
    build_storage,
)


@pytest.fixture
def image() -> UploadedFile:
    return UploadedFile(filename="Passport.JPG", content_type="image/jpeg", content=b"jpeg-bytes")


@pytest.mark.asyncio
class TestLocalStorageAdapter:
    """Disk-backed storage."""

    async def test_upload_and_delete(self, tmp_path, image):
        storage = LocalStorageAdapter(str(tmp_path), "http://localhost:3000/")

        result = await storage.upload(image, "id-verification")

        assert result.path.startswith("id-verification/")
        assert result.path.endswith(".jpg")
        assert result.url == f"http://localhost:3000/uploads/{result.path}"
        assert result.size == len(b"jpeg-bytes")
        assert result.mime_type == "image/jpeg"
        assert (tmp_path / result.path).read_bytes() == b"jpeg-bytes"

        await storage.delete(result.path)
        assert not (tmp_path / result.path).exists()

    async def test_delete_missing_file(self, tmp_path):
        storage = LocalStorageAdapter(str(tmp_path), "http://localhost:3000")

        await storage.delete("id-verification/missing.png")

    async def test_path_escape_rejected(self, tmp_path):
        storage = LocalStorageAdapter(str(tmp_path / "uploads"), "http://localhost:3000")

        with pytest.raises(ValueError):
            await storage.delete("../outside.txt")

    async def test_names_are_unique(self, tmp_path, image):
        storage = LocalStorageAdapter(str(tmp_path), "http://localhost:3000")

        first = await storage.upload(image, "id-verification")
        second = await storage.upload(image, "id-verification")

        assert first.path != second.path


@pytest.mark.asyncio
class TestS3StorageAdapter:
    """Bucket-backed storage with an injected client."""

    async def test_upload(self, image):
        client = MagicMock()
        storage = S3StorageAdapter(
            settings.model_copy(update={"s3_bucket": "bucket", "s3_region": "eu-west-1"}),
            client=client,
        )

        result = await storage.upload(image, "id-verification")

        client.put_object.assert_called_once_with(
            Bucket="bucket",
            Key=result.path,
            Body=b"jpeg-bytes",
            ContentType="image/jpeg",
        )
        assert result.url == f"https://bucket.s3.eu-west-1.amazonaws.com/{result.path}"

    async def test_public_base_url(self):
        storage = S3StorageAdapter(
            settings.model_copy(update={"s3_public_base_url": "https://cdn.example.com/"}),
            client=MagicMock(),
        )

        assert storage.get_public_url("a/b.png") == "https://cdn.example.com/a/b.png"

    async def test_delete(self):
        client = MagicMock()
        storage = S3StorageAdapter(
            settings.model_copy(update={"s3_bucket": "bucket"}), client=client
        )

        await storage.delete("id-verification/x.png")

        client.delete_object.assert_called_once_with(Bucket="bucket", Key="id-verification/x.png")


def test_build_storage_selects_backend():
    local = build_storage(settings.model_copy(update={"storage_backend": "local"}))
    assert isinstance(local, LocalStorageAdapter)

    with pytest.raises(ValueError):
        build_storage(settings.model_copy(update={"storage_backend": "ftp"}))
