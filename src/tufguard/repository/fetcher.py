from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from tufguard.errors import FetchLogicError, TufGuardError
from tufguard.schemas import FetchRequest, FetchResult
from tufguard.transport import AsyncTransport, Transport

from .policy import FetchPolicy


class SecureFetcher:
    """Blocking driver for :class:`FetchPolicy`."""

    def __init__(
        self,
        *,
        transport: Transport,
        policy: FetchPolicy,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.policy = policy
        self._sleep = sleep

    def fetch(self, request: FetchRequest) -> FetchResult:
        prepared = self.policy.begin(request)
        if prepared.result is not None:
            return prepared.result

        self.policy.resolve_target(prepared)

        while prepared.request.retries_remaining > 0:
            prepared.attempt += 1
            try:
                response = self.transport.get(prepared.url, prepared.options)
                return self.policy.accept(prepared, response)
            except TufGuardError as exc:
                delay = self.policy.on_failure(prepared, exc)
                if delay is None:
                    return self.policy.finish(prepared, exc)
                self._sleep(delay)

        raise FetchLogicError(f"fetch of {prepared.url} ended without data or error")


class AsyncSecureFetcher:
    """asyncio driver for :class:`FetchPolicy`.

    The oracle lookup runs in a worker thread as its own awaited step, so it
    always completes before the first transport call. Retries only re-issue
    the transport request.
    """

    def __init__(
        self,
        *,
        transport: AsyncTransport,
        policy: FetchPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.policy = policy
        self._sleep = sleep

    async def fetch(self, request: FetchRequest) -> FetchResult:
        prepared = self.policy.begin(request)
        if prepared.result is not None:
            return prepared.result

        await asyncio.to_thread(self.policy.resolve_target, prepared)

        while prepared.request.retries_remaining > 0:
            prepared.attempt += 1
            try:
                response = await self.transport.get(prepared.url, prepared.options)
                return self.policy.accept(prepared, response)
            except TufGuardError as exc:
                delay = self.policy.on_failure(prepared, exc)
                if delay is None:
                    return self.policy.finish(prepared, exc)
                await self._sleep(delay)

        raise FetchLogicError(f"async fetch of {prepared.url} ended without data or error")
