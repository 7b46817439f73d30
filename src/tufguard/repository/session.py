from __future__ import annotations

import threading
from dataclasses import dataclass, field


@dataclass(slots=True)
class RepositorySession:
    """Mutable per-repository state shared by the blocking and asyncio fetch paths.

    ``degraded`` and ``downgraded`` only ever go from False to True. All
    mutation happens under ``_lock`` so worker threads may share a session.
    """

    base_url: str
    allow_ssl_downgrade: bool = True
    degraded: bool = False
    degraded_message: str | None = None
    downgraded: bool = False
    fresh_urls: set[str] = field(default_factory=set)
    not_found_urls: set[str] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def mark_degraded(self, message: str) -> bool:
        """Enter degraded mode. Returns True only for the first transition."""
        with self._lock:
            if self.degraded:
                return False
            self.degraded = True
            self.degraded_message = message
            return True

    def switch_base_url(self, base_url: str) -> bool:
        with self._lock:
            if self.downgraded or base_url == self.base_url:
                return False
            self.base_url = base_url
            self.downgraded = True
            return True

    def mark_fresh(self, url: str) -> None:
        with self._lock:
            self.fresh_urls.add(url)

    def is_fresh(self, url: str) -> bool:
        with self._lock:
            return url in self.fresh_urls

    def mark_not_found(self, url: str) -> None:
        with self._lock:
            self.not_found_urls.add(url)

    def is_not_found(self, url: str) -> bool:
        with self._lock:
            return url in self.not_found_urls
