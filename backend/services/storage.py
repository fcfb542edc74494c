"""Attachment storage backends."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Protocol

from minio import Minio
from minio.error import S3Error

from core import Settings

_EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,16}$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class UploadStorage(Protocol):
    def save(self, name: str, data: bytes, content_type: str | None = None) -> str: ...


def build_upload_name(original_filename: str | None, *, now: datetime | None = None) -> str:
    """Return `<epoch millis><original extension>` for a stored upload."""
    moment = now or datetime.now(timezone.utc)
    millis = (moment - _EPOCH) // timedelta(milliseconds=1)
    extension = PurePosixPath(original_filename or "").suffix
    if not _EXTENSION_PATTERN.match(extension):
        extension = ""
    return f"{millis}{extension}"


class LocalUploadStorage:
    """Writes uploads to a directory that the app serves under a static prefix."""

    def __init__(self, directory: str | Path, url_prefix: str) -> None:
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, name: str, data: bytes, content_type: str | None = None) -> str:
        self.ensure_directory()
        # Exclusive create: two uploads in the same millisecond must not overwrite each other.
        with open(self.directory / name, "xb") as handle:
            handle.write(data)
        return f"{self.url_prefix}/{name}"


class MinioUploadStorage:
    """Writes uploads to a MinIO bucket that is publicly readable under `public_url`."""

    def __init__(self, client: Minio, bucket: str, public_url: str) -> None:
        self.client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")

    def ensure_bucket(self) -> None:
        if self.client.bucket_exists(self.bucket):  # pragma: no cover - network call
            return

        try:
            self.client.make_bucket(self.bucket)  # pragma: no cover - network call
        except S3Error as exc:  # pragma: no cover - handle race conditions
            allowed_codes = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
            if exc.code not in allowed_codes:
                raise

    def save(self, name: str, data: bytes, content_type: str | None = None) -> str:
        self.ensure_bucket()
        self.client.put_object(
            self.bucket,
            name,
            data=BytesIO(data),
            length=len(data),
            content_type=content_type or "application/octet-stream",
        )
        return f"{self.public_url}/{name}"


def create_minio_client(settings: Settings) -> Minio:
    return Minio(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
    )


def minio_public_url(settings: Settings) -> str:
    if settings.minio_public_url:
        return settings.minio_public_url
    scheme = "https" if settings.minio_secure else "http"
    return f"{scheme}://{settings.minio_endpoint}/{settings.minio_bucket}"


def create_storage(settings: Settings) -> UploadStorage:
    """Build the storage backend selected by `settings.storage_backend`."""
    if settings.storage_backend == "minio":
        return MinioUploadStorage(
            create_minio_client(settings),
            settings.minio_bucket,
            minio_public_url(settings),
        )
    storage = LocalUploadStorage(settings.upload_dir, settings.upload_url_prefix)
    storage.ensure_directory()
    return storage
