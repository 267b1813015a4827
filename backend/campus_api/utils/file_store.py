"""Local storage for uploaded paper files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import UploadFile

from ..config import settings
from ..errors import ValidationError

logger = logging.getLogger("campus_api.files")

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def _validate_upload_filename(filename: str) -> None:
    if not filename or len(filename) > 200:
        raise ValidationError("invalid filename")
    if "/" in filename or "\\" in filename:
        raise ValidationError("invalid filename path")


class FileStore:
    """Save uploads under `root` with generated names and remove them later.

    Stored paths are returned as strings and are what `Paper.file` holds.
    """

    def __init__(self, root: Path, max_bytes: int):
        self.root = Path(root)
        self.max_bytes = max_bytes

    def save(self, upload: Optional[UploadFile]) -> Optional[str]:
        """Persist `upload` and return its stored path, or None without a file."""
        if upload is None or not upload.filename:
            return None
        _validate_upload_filename(upload.filename)
        payload = upload.file.read(self.max_bytes + 1)
        if len(payload) > self.max_bytes:
            raise ValidationError("file too large")
        suffix = Path(upload.filename).suffix.lower()
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.root / f"{uuid4().hex}{suffix}"
        target.write_bytes(payload)
        logger.info("file_saved %s (%d bytes) from %s", target.name, len(payload), upload.filename)
        return str(target)

    def remove(self, path: Optional[str]) -> bool:
        """Delete a stored file; best effort.

        Returns True when a file was removed. Paths outside `root`, missing
        files and OS errors are logged and reported as False.
        """
        if not path:
            return False
        target = Path(path).resolve()
        root = self.root.resolve()
        if root not in target.parents:
            logger.warning("file_remove_refused %s is outside %s", target, root)
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning("file_remove_missing %s", target)
            return False
        except OSError:
            logger.exception("file_remove_failed %s", target)
            return False
        logger.info("file_removed %s", target.name)
        return True


def get_file_store() -> FileStore:
    """FastAPI dependency returning the configured store."""
    return FileStore(settings.UPLOAD_DIR, settings.MAX_UPLOAD_BYTES)
