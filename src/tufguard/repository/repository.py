from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from tufguard.config import AppConfig, RepositoryConfig
from tufguard.errors import NotFoundError, SecurityError, TransportError, TrustError
from tufguard.schemas import FetchOutcome, FetchRequest, FetchResult
from tufguard.storage import FileCache
from tufguard.transport import (
    AsyncTransport,
    HttpxAsyncTransport,
    RequestsTransport,
    Transport,
)
from tufguard.trust import TrustOracleClient

from .fetcher import AsyncSecureFetcher, SecureFetcher
from .policy import (
    DEFAULT_BACKOFF_SECONDS,
    NETWORK_DISABLED_STATUS,
    FetchPolicy,
    MetadataCache,
    PreDownloadHook,
    TargetOracle,
)
from .session import RepositorySession

logger = logging.getLogger(__name__)

ROOT_FILE_NAME = "packages.json"
_URL_ORIGIN = re.compile(r"^[^:]+://[^/]*")


def _not_found_payload() -> dict[str, object]:
    return {"packages": {}}


class VerifiedRepository:
    """Composer-style metadata repository whose files are checked against TUF.

    Repositories without a ``tuf`` section are served unverified: only a
    caller-supplied sha256 is checked, and a warning is logged once when the
    repository is created.
    """

    def __init__(
        self,
        config: RepositoryConfig,
        *,
        cache: MetadataCache,
        transport: Transport,
        async_transport: AsyncTransport | None = None,
        oracle: TargetOracle | None = None,
        metadata_root: str | Path = "vendor/composer/tuf/repo",
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        pre_download_hooks: Iterable[PreDownloadHook] = (),
    ) -> None:
        if config.tuf is None:
            if oracle is not None:
                raise ValueError(f"repository {config.name} has no tuf configuration")
            logger.warning("Authenticity of packages from %s are not verified by TUF.", config.url)
        elif oracle is None:
            oracle = TrustOracleClient.for_repository(
                repo_url=config.url,
                tuf_url=config.tuf.url,
                metadata_root=metadata_root,
            )

        self.config = config
        self.cache = cache
        self.oracle = oracle
        self.session = RepositorySession(
            base_url=config.url,
            allow_ssl_downgrade=config.allow_ssl_downgrade,
        )
        self.policy = FetchPolicy(
            session=self.session,
            cache=cache,
            oracle=oracle,
            options=config.options,
            backoff_seconds=backoff_seconds,
            pre_download_hooks=pre_download_hooks,
        )
        self.fetcher = SecureFetcher(transport=transport, policy=self.policy)
        self.async_fetcher = (
            AsyncSecureFetcher(transport=async_transport, policy=self.policy)
            if async_transport is not None
            else None
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def url(self) -> str:
        return self.session.base_url

    @property
    def is_validated(self) -> bool:
        return self.oracle is not None

    @property
    def degraded(self) -> bool:
        return self.session.degraded

    def load_root_server_file(self) -> FetchResult:
        if self.oracle is not None:
            try:
                self.oracle.refresh()
            except TrustError as exc:
                raise SecurityError(
                    f"TUF secure error: {exc.message}",
                    repository_url=self.url,
                ) from exc

        return self.fetch_file(f"{self.url}/{ROOT_FILE_NAME}", cache_key=ROOT_FILE_NAME)

    def fetch_file(
        self,
        filename: str,
        cache_key: str | None = None,
        sha256: str | None = None,
        store_last_modified: bool = False,
    ) -> FetchResult:
        request = FetchRequest(
            filename=self.canonicalize_url(filename),
            cache_key=cache_key,
            sha256=sha256,
            store_last_modified=store_last_modified,
        )
        return self.fetcher.fetch(request)

    async def async_fetch_file(
        self,
        filename: str,
        cache_key: str,
        last_modified: str | None = None,
    ) -> FetchResult:
        """Fetch through the asyncio path.

        A missing file is an empty package list. With the network disabled and
        nothing cached, the repository degrades and also yields an empty list.
        """
        if self.async_fetcher is None:
            raise RuntimeError(f"repository {self.name} has no async transport")

        request = FetchRequest(
            filename=self.canonicalize_url(filename),
            cache_key=cache_key,
            store_last_modified=True,
            last_modified=last_modified,
        )
        try:
            return await self.async_fetcher.fetch(request)
        except NotFoundError:
            return FetchResult(
                filename=request.filename,
                outcome=FetchOutcome.NOT_FOUND,
                data=_not_found_payload(),
            )
        except TransportError as exc:
            if exc.status_code != NETWORK_DISABLED_STATUS:
                raise
            self.policy.enter_degraded_mode(exc)
            return FetchResult(
                filename=request.filename,
                outcome=FetchOutcome.DEGRADED,
                data=_not_found_payload(),
            )

    def canonicalize_url(self, url: str) -> str:
        if url.startswith("/"):
            match = _URL_ORIGIN.match(self.url)
            if match:
                return match.group(0) + url
            return self.url
        return url


def create_repository(
    config: RepositoryConfig,
    app_config: AppConfig,
    *,
    cache: MetadataCache | None = None,
    transport: Transport | None = None,
    async_transport: AsyncTransport | None = None,
    pre_download_hooks: Iterable[PreDownloadHook] = (),
) -> VerifiedRepository:
    """Build a repository with its collaborators wired from configuration."""
    transport_config = app_config.transport
    if cache is None:
        cache = FileCache(app_config.cache.directory, read_only=app_config.cache.read_only)
    if transport is None:
        transport = RequestsTransport(
            timeout_seconds=transport_config.timeout_seconds,
            user_agent=transport_config.user_agent,
        )
    if async_transport is None:
        async_transport = HttpxAsyncTransport(
            timeout_seconds=transport_config.timeout_seconds,
            user_agent=transport_config.user_agent,
        )

    return VerifiedRepository(
        config,
        cache=cache,
        transport=transport,
        async_transport=async_transport,
        metadata_root=Path(app_config.vendor_dir) / "composer" / "tuf" / "repo",
        backoff_seconds=transport_config.backoff_seconds,
        pre_download_hooks=pre_download_hooks,
    )
