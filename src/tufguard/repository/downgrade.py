from __future__ import annotations

import logging
import re

from .session import RepositorySession

logger = logging.getLogger(__name__)

_HTTPS_PREFIX = re.compile(r"^https://", re.IGNORECASE)


def downgrade_url(url: str) -> str:
    return _HTTPS_PREFIX.sub("http://", url, count=1)


class DowngradePolicy:
    """One-way https -> http fallback for a repository session."""

    def __init__(self, session: RepositorySession) -> None:
        self.session = session

    @property
    def allowed(self) -> bool:
        return self.session.allow_ssl_downgrade

    def on_transient_failure(self, url: str) -> str:
        """Apply the downgrade after a transient failure; return the URL to retry."""
        if not self.allowed:
            return url

        target = downgrade_url(self.session.base_url)
        if self.session.switch_base_url(target):
            logger.info(
                "ssl downgrade applied repository=%s",
                self.session.base_url,
            )
        return downgrade_url(url)
