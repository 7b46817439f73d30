"""Secure fetch protocol for TUF-validated repositories."""

from .downgrade import DowngradePolicy, downgrade_url
from .fetcher import AsyncSecureFetcher, SecureFetcher
from .policy import FetchPolicy, PreparedFetch, normalize_url, target_path_for
from .repository import VerifiedRepository, create_repository
from .session import RepositorySession

__all__ = [
    "AsyncSecureFetcher",
    "DowngradePolicy",
    "FetchPolicy",
    "PreparedFetch",
    "RepositorySession",
    "SecureFetcher",
    "VerifiedRepository",
    "create_repository",
    "downgrade_url",
    "normalize_url",
    "target_path_for",
]
