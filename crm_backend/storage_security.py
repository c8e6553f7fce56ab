"""
Validation helpers for uploaded attachment files.

Each validator returns ``(valid, error_message)`` so callers can collect
or raise as they see fit.
"""

import os
import re
from pathlib import Path
from typing import Optional, Tuple

from crm_backend.storage_config import (
    BLOCKED_EXTENSIONS,
    MAX_FILENAME_LENGTH,
    MAX_UPLOAD_SIZE,
    format_bytes,
)

_UNSAFE_CHARS = re.compile(r"[^\w\s.\-]")
_WHITESPACE = re.compile(r"\s+")
_LEADING_DOTS = re.compile(r"^\.+")


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client-supplied filename to a safe basename.

    Drops directory components and special characters, turns whitespace into
    underscores, neutralizes leading dots and truncates long stems while
    keeping the extension.
    """
    name = Path((filename or "").replace("\\", "/")).name.strip()
    name = _UNSAFE_CHARS.sub("", name)
    name = _WHITESPACE.sub("_", name)
    name = _LEADING_DOTS.sub("_", name)

    if not name.strip("_"):
        return "unnamed_file"

    stem, ext = os.path.splitext(name)
    if len(stem) > MAX_FILENAME_LENGTH:
        stem = stem[:MAX_FILENAME_LENGTH]
    return f"{stem}{ext}"


def validate_file_extension(filename: str) -> Tuple[bool, Optional[str]]:
    ext = os.path.splitext(filename)[1].lower()
    if ext and ext in BLOCKED_EXTENSIONS:
        return False, f"File type '{ext}' is not allowed"
    return True, None


def validate_file_size(size: int, max_size: int = MAX_UPLOAD_SIZE) -> Tuple[bool, Optional[str]]:
    if size < 0:
        return False, "Invalid file size"
    if size > max_size:
        return False, f"File size {format_bytes(size)} exceeds maximum of {format_bytes(max_size)}"
    return True, None
