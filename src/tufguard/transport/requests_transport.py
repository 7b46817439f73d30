from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests

from tufguard.errors import TransportError
from tufguard.schemas import Response

from .base import (
    DEFAULT_USER_AGENT,
    check_body_size,
    http_status_error,
    max_body_bytes,
    request_headers,
    request_timeout,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class RequestsTransport:
    """Blocking transport on top of a shared requests.Session."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.session.headers.setdefault("User-Agent", user_agent)

    def get(self, url: str, options: Mapping[str, Any] | None = None) -> Response:
        max_bytes = max_body_bytes(options)
        try:
            response = self.session.get(
                url,
                headers=request_headers(options),
                timeout=request_timeout(options, self.timeout_seconds),
                stream=True,
            )
        except requests.RequestException as exc:
            logger.info("transport request failed url=%s error=%s", url, exc)
            raise TransportError(f"request for {url} failed: {exc}", filename=url) from exc

        try:
            headers = dict(response.headers)
            if response.status_code == 304:
                return Response(status_code=304, body=b"", headers=headers)
            if response.status_code >= 400:
                raise http_status_error(url=url, status_code=response.status_code)

            chunks: list[bytes] = []
            received = 0
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                received += len(chunk)
                check_body_size(url=url, received=received, max_bytes=max_bytes)
                chunks.append(chunk)
            return Response(status_code=response.status_code, body=b"".join(chunks), headers=headers)
        except requests.RequestException as exc:
            raise TransportError(f"reading {url} failed: {exc}", filename=url) from exc
        finally:
            response.close()
