from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError
from tuf.api.exceptions import DownloadError, RepositoryError, UnsignedMetadataError
from tuf.ngclient import Updater

from tufguard.errors import (
    InvalidSignatureError,
    TargetNotFoundError,
    TrustError,
)
from tufguard.schemas import TargetInfo

logger = logging.getLogger(__name__)

_UNSAFE_PATH_CHARS = re.compile(r"[^a-z0-9.]", re.IGNORECASE)


class TargetUpdater(Protocol):
    def refresh(self) -> None:
        """Update top-level trust metadata."""

    def get_targetinfo(self, target_path: str) -> Any | None:
        """Return the TargetFile for target_path, or None when unknown."""


def trust_storage_path(metadata_root: str | Path, repo_url: str) -> Path:
    """Directory holding the trusted TUF metadata for one repository."""
    return Path(metadata_root) / _UNSAFE_PATH_CHARS.sub("-", repo_url)


class TrustOracleClient:
    """Refresh-once façade over a TUF updater that hands out TargetInfo."""

    def __init__(
        self,
        updater_factory: Callable[[], TargetUpdater],
        *,
        repository_url: str | None = None,
    ) -> None:
        self._updater_factory = updater_factory
        self._updater: TargetUpdater | None = None
        self.repository_url = repository_url
        self.is_refreshed = False

    @classmethod
    def for_repository(
        cls,
        *,
        repo_url: str,
        tuf_url: str,
        metadata_root: str | Path,
    ) -> TrustOracleClient:
        metadata_dir = trust_storage_path(metadata_root, repo_url)

        def build_updater() -> Updater:
            metadata_dir.mkdir(parents=True, exist_ok=True)
            return Updater(
                metadata_dir=str(metadata_dir),
                metadata_base_url=tuf_url.rstrip("/") + "/",
                target_base_url=repo_url.rstrip("/") + "/",
            )

        return cls(build_updater, repository_url=repo_url)

    def refresh(self) -> None:
        if self.is_refreshed:
            return

        try:
            updater = self._get_updater()
            updater.refresh()
        except TrustError:
            raise
        except UnsignedMetadataError as exc:
            raise InvalidSignatureError(
                f"trust metadata signature check failed: {exc}",
                repository_url=self.repository_url,
            ) from exc
        except (RepositoryError, DownloadError, OSError) as exc:
            raise TrustError(
                f"could not refresh trust metadata: {exc}",
                repository_url=self.repository_url,
            ) from exc

        self.is_refreshed = True
        logger.info("trust_oracle refreshed repository=%s", self.repository_url)

    def get_target_info(self, path: str) -> TargetInfo:
        self.refresh()
        updater = self._get_updater()
        try:
            target = updater.get_targetinfo(path)
        except UnsignedMetadataError as exc:
            raise InvalidSignatureError(
                f"delegated metadata for {path} failed signature check: {exc}",
                filename=path,
                repository_url=self.repository_url,
            ) from exc
        except (RepositoryError, DownloadError, OSError) as exc:
            raise TrustError(
                f"could not look up target {path}: {exc}",
                filename=path,
                repository_url=self.repository_url,
            ) from exc

        if target is None:
            raise TargetNotFoundError(
                f"{path} is not a registered target",
                filename=path,
                repository_url=self.repository_url,
            )

        try:
            return TargetInfo(path=path, length=target.length, hashes=dict(target.hashes))
        except ValidationError as exc:
            raise TrustError(
                f"target {path} has no usable sha256 hash",
                filename=path,
                repository_url=self.repository_url,
            ) from exc

    def _get_updater(self) -> TargetUpdater:
        if self._updater is None:
            try:
                self._updater = self._updater_factory()
            except (RepositoryError, OSError) as exc:
                raise TrustError(
                    f"could not load trusted root metadata: {exc}",
                    repository_url=self.repository_url,
                ) from exc
        return self._updater
