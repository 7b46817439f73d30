from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class FileCache:
    """Byte store for verified repository metadata, one file per key."""

    def __init__(self, directory: str | Path, *, read_only: bool = False) -> None:
        self.directory = Path(directory)
        self.read_only = read_only
        if not read_only:
            self.directory.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self.directory

    def is_read_only(self) -> bool:
        return self.read_only

    def read(self, key: str) -> bytes | None:
        data_path = self._data_path(key)
        if not data_path.exists():
            logger.info("file_cache miss key=%s", self._sha1_key(key))
            return None

        logger.info("file_cache hit key=%s", self._sha1_key(key))
        return data_path.read_bytes()

    def write(self, key: str, value: bytes) -> None:
        if self.read_only:
            raise PermissionError(f"cache at {self.directory} is read-only")

        data_path = self._data_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
            os.replace(tmp_name, data_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("file_cache write key=%s bytes=%d", self._sha1_key(key), len(value))

    @staticmethod
    def _sha1_key(key: str) -> str:
        return hashlib.sha1(key.encode("utf-8")).hexdigest()

    def _data_path(self, key: str) -> Path:
        return self.directory / f"{self._sha1_key(key)}.cache"
