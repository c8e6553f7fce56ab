"""
JSON file persistence helpers.

Writes go to a temporary file in the target directory and are moved into
place with ``os.replace``, so a reader never observes a half-written file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from crm_backend.exceptions import PersistenceException

logger = logging.getLogger(__name__)


def read_json(path: Path, default: Any) -> Any:
    """Load a JSON file, returning ``default`` when it does not exist."""
    if not path.exists():
        return default

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Failed to load {path}: {type(e).__name__}: {e}")
        raise PersistenceException(
            detail=f"Could not read {path.name}",
            context={"path": str(path), "error": str(e)},
        ) from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize ``data`` to ``path`` via temp file + rename."""
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_name = f.name
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceException(
            context={"path": str(path), "error": str(e)},
        ) from e
