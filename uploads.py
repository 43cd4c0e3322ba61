import logging
import os
import secrets
import shutil
import time
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

logger = logging.getLogger("social.uploads")

URL_PREFIX = "/uploads"


class UploadReceiver:
    """Persists post attachments under a flat directory served at /uploads."""

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def _reserve_name(self, original: str) -> Path:
        ext = os.path.splitext(original)[1]
        while True:
            name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}{ext}"
            path = self.directory / name
            try:
                # "x" fails if another request already took the name
                path.open("xb").close()
                return path
            except FileExistsError:
                continue

    def save(self, upload: Optional[UploadFile]) -> str:
        """Store `upload` and return its `/uploads/<name>` reference.

        An absent file, or a file part without a filename, yields "".
        """
        if upload is None or not upload.filename:
            return ""
        path = self._reserve_name(upload.filename)
        try:
            with path.open("wb") as out:
                shutil.copyfileobj(upload.file, out)
        except OSError:
            path.unlink(missing_ok=True)
            raise
        logger.info("stored upload %s (%s)", path.name, upload.content_type)
        return f"{URL_PREFIX}/{path.name}"

    def discard(self, ref: str) -> None:
        """Remove a file previously returned by `save`. Empty refs are ignored."""
        if not ref:
            return
        name = ref.rsplit("/", 1)[-1]
        (self.directory / name).unlink(missing_ok=True)
        logger.info("discarded upload %s", name)
