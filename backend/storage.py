# storage.py - Attachment object storage, namespaced per owning user
"""
Objects live at ``<root>/<user_id>/<task_id>/<uuid>-<filename>``. The first
path segment is always the owner's id, and reads or deletes of a path outside
the caller's own folder are refused.
"""
import os
import re
import uuid
import logging
from pathlib import Path
from typing import Optional

from fastapi import HTTPException

from policies import AccessDenied

logger = logging.getLogger("clientdesk.storage")

DEFAULT_MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024
READ_CHUNK_BYTES = 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def storage_root() -> Path:
    return Path(os.getenv("ATTACHMENT_STORAGE_ROOT", "./data/task-attachments"))


def max_attachment_bytes() -> int:
    return int(os.getenv("MAX_ATTACHMENT_BYTES", str(DEFAULT_MAX_ATTACHMENT_BYTES)))


def safe_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "file"


def object_key(user_id: str, task_id: str, filename: str) -> str:
    return f"{user_id}/{task_id}/{uuid.uuid4().hex}-{safe_filename(filename)}"


def _resolve(key: str, user_id: str) -> Path:
    parts = key.split("/")
    if not parts or parts[0] != user_id or ".." in parts:
        logger.warning(f"Storage access outside owner folder refused: {key} for {user_id}")
        raise AccessDenied()
    root = storage_root().resolve()
    path = (root / key).resolve()
    if root not in path.parents:
        raise AccessDenied()
    return path


def _too_large(limit: int) -> HTTPException:
    return HTTPException(status_code=413, detail=f"Attachment exceeds {limit} bytes")


async def read_upload(upload, limit: Optional[int] = None, chunk_size: int = READ_CHUNK_BYTES) -> bytes:
    """Read an upload in chunks, stopping with 413 as soon as it passes ``limit``"""
    limit = max_attachment_bytes() if limit is None else limit
    if upload.size is not None and upload.size > limit:
        raise _too_large(limit)
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _too_large(limit)
        chunks.append(chunk)
    return b"".join(chunks)


def save_object(key: str, user_id: str, data: bytes) -> int:
    limit = max_attachment_bytes()
    if len(data) > limit:
        raise _too_large(limit)
    path = _resolve(key, user_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return len(data)


def object_path(key: str, user_id: str) -> Path:
    path = _resolve(key, user_id)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Stored file not found")
    return path


def delete_object(key: str, user_id: str) -> None:
    path = _resolve(key, user_id)
    try:
        path.unlink()
    except FileNotFoundError:
        logger.info(f"Stored file already gone: {key}")
