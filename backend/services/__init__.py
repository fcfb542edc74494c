"""Business logic services."""

from .storage import (
    LocalUploadStorage,
    MinioUploadStorage,
    UploadStorage,
    build_upload_name,
    create_storage,
)
from .uploads import UploadTooLargeError, read_upload_file, store_upload

__all__ = [
    "UploadStorage",
    "LocalUploadStorage",
    "MinioUploadStorage",
    "build_upload_name",
    "create_storage",
    "UploadTooLargeError",
    "read_upload_file",
    "store_upload",
]
