from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from tufguard.errors import TransportError
from tufguard.schemas import Response

DEFAULT_USER_AGENT = "tufguard/0.1.0"


class Transport(Protocol):
    def get(self, url: str, options: Mapping[str, Any] | None = None) -> Response:
        """Fetch url, raising TransportError for failures and HTTP errors."""


class AsyncTransport(Protocol):
    async def get(self, url: str, options: Mapping[str, Any] | None = None) -> Response:
        """Coroutine flavour of Transport.get with the same error taxonomy."""


def request_headers(options: Mapping[str, Any] | None) -> dict[str, str]:
    if not options:
        return {}
    raw = options.get("headers") or {}
    if not isinstance(raw, Mapping):
        raise ValueError("transport option 'headers' must be a mapping")
    return {str(name): str(value) for name, value in raw.items()}


def request_timeout(options: Mapping[str, Any] | None, default: float) -> float:
    if not options or options.get("timeout") is None:
        return default
    timeout = float(options["timeout"])
    if timeout <= 0:
        raise ValueError("transport option 'timeout' must be > 0")
    return timeout


def max_body_bytes(options: Mapping[str, Any] | None) -> int | None:
    if not options or options.get("max_bytes") is None:
        return None
    return int(options["max_bytes"])


def check_body_size(*, url: str, received: int, max_bytes: int | None) -> None:
    if max_bytes is not None and received > max_bytes:
        raise TransportError(
            f"response for {url} exceeded expected length of {max_bytes} bytes",
            filename=url,
        )


def http_status_error(*, url: str, status_code: int) -> TransportError:
    return TransportError(f"HTTP {status_code} for {url}", status_code=status_code, filename=url)
