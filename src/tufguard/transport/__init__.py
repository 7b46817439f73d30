"""Blocking and asyncio HTTP transports."""

from .base import AsyncTransport, Transport
from .httpx_transport import HttpxAsyncTransport
from .requests_transport import RequestsTransport

__all__ = [
    "AsyncTransport",
    "HttpxAsyncTransport",
    "RequestsTransport",
    "Transport",
]
