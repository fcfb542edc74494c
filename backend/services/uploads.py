"""Reading multipart uploads and handing them to the storage backend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from fastapi import UploadFile

from .storage import UploadStorage, build_upload_name

UPLOAD_CHUNK_SIZE = 64 * 1024
MAX_NAME_ATTEMPTS = 5


class UploadTooLargeError(ValueError):
    def __init__(self, max_bytes: int) -> None:
        super().__init__(f"Upload exceeds the maximum size of {max_bytes} bytes")
        self.max_bytes = max_bytes


async def read_upload_file(upload: UploadFile, max_bytes: int) -> bytes:
    """Read the whole upload, failing as soon as it grows past `max_bytes`."""
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise UploadTooLargeError(max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


async def store_upload(
    storage: UploadStorage,
    upload: UploadFile,
    max_bytes: int,
    *,
    now: datetime | None = None,
) -> str:
    """Persist an upload and return the path it can be retrieved from."""
    data = await read_upload_file(upload, max_bytes)
    moment = now or datetime.now(timezone.utc)
    # Names are millisecond timestamps; step forward when one is already taken.
    for attempt in range(MAX_NAME_ATTEMPTS):
        name = build_upload_name(upload.filename, now=moment + timedelta(milliseconds=attempt))
        try:
            return await asyncio.to_thread(storage.save, name, data, upload.content_type)
        except FileExistsError:
            continue
    raise FileExistsError(f"No free upload name after {MAX_NAME_ATTEMPTS} attempts")
