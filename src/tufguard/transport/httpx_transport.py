from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

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


class HttpxAsyncTransport:
    """asyncio transport backed by httpx.AsyncClient, created on first request."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def get(self, url: str, options: Mapping[str, Any] | None = None) -> Response:
        max_bytes = max_body_bytes(options)
        try:
            async with self.client.stream(
                "GET",
                url,
                headers=request_headers(options),
                timeout=request_timeout(options, self.timeout_seconds),
            ) as response:
                headers = dict(response.headers)
                if response.status_code == 304:
                    return Response(status_code=304, body=b"", headers=headers)
                if response.status_code >= 400:
                    raise http_status_error(url=url, status_code=response.status_code)

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    check_body_size(url=url, received=received, max_bytes=max_bytes)
                    chunks.append(chunk)
                return Response(
                    status_code=response.status_code,
                    body=b"".join(chunks),
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.info("transport request failed url=%s error=%s", url, exc)
            raise TransportError(f"request for {url} failed: {exc}", filename=url) from exc

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
