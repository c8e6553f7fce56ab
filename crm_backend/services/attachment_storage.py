"""
Attachment blob store.

Uploaded files are validated, written under ``UPLOADS_DIR`` with a generated
name and described by an ``Attachment`` whose url is served by the
uploads router.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from crm_backend.exceptions import InvalidFileUploadException, PersistenceException
from crm_backend.model.chat import Attachment
from crm_backend.settings import settings
from crm_backend.storage_config import MAX_ATTACHMENTS_PER_MESSAGE, MAX_UPLOAD_SIZE, format_bytes
from crm_backend.storage_security import (
    sanitize_filename,
    validate_file_extension,
    validate_file_size,
)

logger = logging.getLogger(__name__)


def display_name(filename: str) -> str:
    """Client file name without any directory part."""
    return Path(filename.replace("\\", "/")).name.strip()


class AttachmentStorage:

    def __init__(self, upload_dir: Path | str, url_prefix: str = "/uploads", max_size: int = MAX_UPLOAD_SIZE):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_size = max_size

    async def save_all(self, files: Sequence[UploadFile]) -> List[Attachment]:
        """
        Validate every file first, then store them.

        Raises:
            InvalidFileUploadException: too many files, blocked type or bad size
            PersistenceException: a file could not be written
        """
        files = [f for f in files if f is not None and f.filename]
        if len(files) > MAX_ATTACHMENTS_PER_MESSAGE:
            raise InvalidFileUploadException(
                detail=f"Too many attachments (max {MAX_ATTACHMENTS_PER_MESSAGE})"
            )

        prepared = []
        for upload in files:
            content = await upload.read()
            safe_name = self._validate(upload.filename, len(content))
            prepared.append((display_name(upload.filename) or safe_name, safe_name, content))

        attachments = []
        for original_name, safe_name, content in prepared:
            attachments.append(await self._store(original_name, safe_name, content))
        return attachments

    def _validate(self, filename: str, size: int) -> str:
        safe_name = sanitize_filename(filename)

        valid, error = validate_file_extension(safe_name)
        if not valid:
            raise InvalidFileUploadException(detail=error, context={"filename": safe_name})

        valid, error = validate_file_size(size, self.max_size)
        if not valid:
            raise InvalidFileUploadException(
                detail=error,
                max_size=format_bytes(self.max_size),
                context={"filename": safe_name},
            )

        return safe_name

    async def _store(self, original_name: str, safe_name: str, content: bytes) -> Attachment:
        ext = os.path.splitext(safe_name)[1].lower()
        stored_name = f"{uuid.uuid4().hex}{ext}"
        path = self.upload_dir / stored_name

        try:
            await run_in_threadpool(self._write, path, content)
        except OSError as e:
            logger.error(f"Failed to store attachment {safe_name} at {path}: {e}")
            raise PersistenceException(detail="Attachment could not be stored")

        logger.info(f"Stored attachment {safe_name} as {stored_name} ({format_bytes(len(content))})")
        return Attachment(filename=original_name, url=f"{self.url_prefix}/{stored_name}")

    @staticmethod
    def _write(path: Path, content: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


_attachment_storage: Optional[AttachmentStorage] = None


def init_attachment_storage(upload_dir: Optional[Path | str] = None) -> AttachmentStorage:
    global _attachment_storage
    upload_dir = Path(upload_dir or settings.UPLOADS_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    _attachment_storage = AttachmentStorage(upload_dir, settings.UPLOADS_URL_PREFIX)
    return _attachment_storage


def get_attachment_storage() -> AttachmentStorage:
    """FastAPI dependency; lazily initialized from settings."""
    if _attachment_storage is None:
        return init_attachment_storage()
    return _attachment_storage
