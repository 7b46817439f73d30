from __future__ import annotations

import hashlib
import logging
import re
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import unquote, urlsplit

from tufguard.errors import (
    ContentHashMismatch,
    MetadataDecodeError,
    NotFoundError,
    SecurityError,
    TransportError,
    TrustError,
    TufGuardError,
)
from tufguard.schemas import (
    FetchOutcome,
    FetchRequest,
    FetchResult,
    Response,
    TargetInfo,
    decode_json_object,
    encode_json_object,
)

from .downgrade import DowngradePolicy
from .session import RepositorySession

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_SECONDS = 0.1
NOT_FOUND_STATUS = 404
NOT_MODIFIED_STATUS = 304
# Returned by hosts that artificially disable the network.
NETWORK_DISABLED_STATUS = 499

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)

PreDownloadHook = Callable[[str], str]


class TargetOracle(Protocol):
    def refresh(self) -> None: ...

    def get_target_info(self, path: str) -> TargetInfo: ...


class MetadataCache(Protocol):
    def read(self, key: str) -> bytes | None: ...

    def write(self, key: str, value: bytes) -> None: ...

    def is_read_only(self) -> bool: ...


@dataclass(slots=True)
class PreparedFetch:
    request: FetchRequest
    url: str
    requested_url: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    expected_sha256: str | None = None
    target: TargetInfo | None = None
    attempt: int = 0
    result: FetchResult | None = None


def normalize_url(filename: str) -> str:
    """Percent-encode the first ``$`` of an http(s) URL; some proxies choke on it."""
    position = filename.find("$")
    if position > 0 and _HTTP_URL.match(filename):
        return f"{filename[:position]}%24{filename[position + 1:]}"
    return filename


def target_path_for(url: str) -> str:
    return unquote(urlsplit(url).path).lstrip("/")


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def emit_repository_warnings(repository_url: str, data: Mapping[str, Any]) -> None:
    """Log the warning/info notices a repository may embed in its metadata."""
    warning = data.get("warning")
    if isinstance(warning, str) and warning.strip():
        logger.warning("repository notice url=%s warning=%s", repository_url, warning)

    info = data.get("info")
    if isinstance(info, str) and info.strip():
        logger.info("repository notice url=%s info=%s", repository_url, info)

    warnings = data.get("warnings")
    if isinstance(warnings, list):
        for entry in warnings:
            if isinstance(entry, Mapping) and isinstance(entry.get("message"), str):
                logger.warning(
                    "repository notice url=%s warning=%s", repository_url, entry["message"]
                )


class FetchPolicy:
    """Retry, verification and cache-fallback rules shared by both fetch paths.

    The drivers in :mod:`tufguard.repository.fetcher` only decide *how* to
    wait for the transport and the backoff; every decision about what a
    response or failure means is made here.
    """

    def __init__(
        self,
        *,
        session: RepositorySession,
        cache: MetadataCache,
        oracle: TargetOracle | None = None,
        options: Mapping[str, Any] | None = None,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        pre_download_hooks: Iterable[PreDownloadHook] = (),
    ) -> None:
        if backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")

        self.session = session
        self.cache = cache
        self.oracle = oracle
        self.options = dict(options or {})
        self.backoff_seconds = backoff_seconds
        self.pre_download_hooks = list(pre_download_hooks)
        self.downgrade = DowngradePolicy(session)
        self._oracle_lock = threading.Lock()

    @property
    def is_validated(self) -> bool:
        return self.oracle is not None

    def begin(self, request: FetchRequest) -> PreparedFetch:
        url = normalize_url(request.filename)
        for hook in self.pre_download_hooks:
            url = hook(url)

        prepared = PreparedFetch(
            request=request,
            url=url,
            requested_url=url,
            options=self._request_options(request),
            expected_sha256=request.sha256,
        )

        if self.session.is_not_found(url):
            raise NotFoundError(
                f"{url} was not found",
                filename=url,
                repository_url=self.session.base_url,
            )
        if request.last_modified and self.session.is_fresh(url):
            logger.info("secure_fetch fresh url=%s", url)
            prepared.result = FetchResult(filename=url, outcome=FetchOutcome.NOT_MODIFIED)
        return prepared

    def resolve_target(self, prepared: PreparedFetch) -> None:
        """Look up the expected hash. Trust failures are never retried."""
        if self.oracle is None:
            return

        target_path = target_path_for(prepared.url)
        with self._oracle_lock:
            try:
                self.oracle.refresh()
                target = self.oracle.get_target_info(target_path)
            except TrustError as exc:
                raise SecurityError(
                    f"TUF secure error: {exc.message}",
                    filename=prepared.url,
                    repository_url=self.session.base_url,
                ) from exc

        caller_sha256 = prepared.request.sha256
        if caller_sha256 is not None and caller_sha256 != target.sha256:
            raise SecurityError(
                "TUF secure error: disagreement between TUF and repository "
                f"on expected hash of {target_path}",
                filename=prepared.url,
                repository_url=self.session.base_url,
            )

        prepared.target = target
        prepared.expected_sha256 = target.sha256
        prepared.options["max_bytes"] = target.length

    def accept(self, prepared: PreparedFetch, response: Response) -> FetchResult:
        request = prepared.request
        if response.status_code == NOT_MODIFIED_STATUS:
            if not request.last_modified:
                raise TransportError(
                    f"unexpected 304 for unconditional request of {prepared.url}",
                    status_code=NOT_MODIFIED_STATUS,
                    filename=prepared.url,
                    repository_url=self.session.base_url,
                )
            self.session.mark_fresh(prepared.requested_url)
            return FetchResult(filename=prepared.url, outcome=FetchOutcome.NOT_MODIFIED)

        body = response.body
        if prepared.expected_sha256 is not None:
            actual = sha256_hex(body)
            if actual != prepared.expected_sha256:
                raise ContentHashMismatch(
                    filename=prepared.url,
                    expected=prepared.expected_sha256,
                    actual=actual,
                    repository_url=self.session.base_url,
                )

        data = self._decode(body, source=prepared.url)
        emit_repository_warnings(self.session.base_url, data)

        payload = body
        if request.store_last_modified:
            last_modified = response.header("last-modified")
            if last_modified:
                data["last-modified"] = last_modified
                payload = encode_json_object(data)

        if request.cache_key and not self.cache.is_read_only():
            self.cache.write(request.cache_key, payload)
        self.session.mark_fresh(prepared.requested_url)

        outcome = FetchOutcome.VERIFIED if prepared.target is not None else FetchOutcome.UNVERIFIED
        logger.info(
            "secure_fetch %s url=%s attempt=%d bytes=%d",
            outcome.value,
            prepared.url,
            prepared.attempt,
            len(body),
        )
        return FetchResult(filename=prepared.url, outcome=outcome, body=body, data=data)

    def on_failure(self, prepared: PreparedFetch, error: TufGuardError) -> float | None:
        """Consume one attempt. Returns the backoff before the next one, or
        None once the budget is spent. Re-raises errors that must not be retried.
        """
        request = prepared.request
        request.retries_remaining -= 1

        if isinstance(error, TransportError) and error.status_code == NOT_FOUND_STATUS:
            self.session.mark_not_found(prepared.requested_url)
            raise NotFoundError(
                f"{prepared.url} was not found",
                filename=prepared.url,
                repository_url=self.session.base_url,
            ) from error
        if isinstance(error, (SecurityError, TrustError, MetadataDecodeError)):
            raise error
        if isinstance(error, TransportError) and error.status_code == NETWORK_DISABLED_STATUS:
            request.retries_remaining = 0

        if request.retries_remaining <= 0:
            return None

        if isinstance(error, TransportError):
            prepared.url = self.downgrade.on_transient_failure(prepared.url)
        logger.info(
            "secure_fetch retry url=%s attempt=%d remaining=%d error=%s",
            prepared.url,
            prepared.attempt,
            request.retries_remaining,
            error.message,
        )
        return self.backoff_seconds

    def finish(self, prepared: PreparedFetch, error: TufGuardError) -> FetchResult:
        """Terminal step once the retry budget is spent: cache fallback or raise."""
        cache_key = prepared.request.cache_key
        cached = self.cache.read(cache_key) if cache_key else None
        if cached:
            data = self._decode(cached, source=f"cache:{cache_key}")
            self.enter_degraded_mode(error)
            return FetchResult(
                filename=prepared.url,
                outcome=FetchOutcome.DEGRADED,
                body=cached,
                data=data,
            )

        if isinstance(error, ContentHashMismatch):
            raise SecurityError(
                f"The contents of {prepared.url} do not match its signature. This could "
                "indicate a man-in-the-middle attack or e.g. antivirus software corrupting "
                "files.",
                filename=prepared.url,
                repository_url=self.session.base_url,
            ) from error
        raise error

    def enter_degraded_mode(self, error: TufGuardError) -> None:
        message = (
            f"{self.session.base_url} could not be fully loaded ({error.message}), "
            "package information was loaded from the local cache and may be out of date"
        )
        if self.session.mark_degraded(message):
            logger.warning(message)

    def _request_options(self, request: FetchRequest) -> dict[str, Any]:
        options = dict(self.options)
        headers = dict(options.get("headers") or {})
        if request.last_modified:
            headers["If-Modified-Since"] = request.last_modified
        options["headers"] = headers
        return options

    def _decode(self, payload: bytes, *, source: str) -> dict[str, Any]:
        try:
            return decode_json_object(payload)
        except ValueError as exc:
            raise MetadataDecodeError(
                f"{source} is not a JSON object: {exc}",
                filename=source,
                repository_url=self.session.base_url,
            ) from exc
