"""Key-addressed byte storage used for uploaded and generated documents."""
import logging
import os
import secrets
import tempfile
from pathlib import Path
from typing import Protocol

from coursework.core.errors import DocumentNotFound

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def put(self, data: bytes, suffix: str = "") -> str: ...

    def get(self, key: str) -> bytes: ...

    def delete(self, key: str) -> None: ...


class LocalBlobStore:
    """Stores each blob as a file below ``root``.

    Keys look like ``ab/ab12...ef.pdf``; the two-character prefix keeps
    directories small.
    """

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise DocumentNotFound(f"Invalid blob key: {key}")
        return path

    def put(self, data: bytes, suffix: str = "") -> str:
        token = secrets.token_hex(16)
        key = f"{token[:2]}/{token}{suffix}"
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp = tempfile.mkstemp(dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

        logger.debug("stored blob %s (%d bytes)", key, len(data))
        return key

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise DocumentNotFound()

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        logger.debug("released blob %s", key)


def suffix_for(filename: str | None) -> str:
    if not filename:
        return ""
    return Path(filename).suffix.lower()[:10]
