"""TUF-verified repository metadata fetching."""

from .config import AppConfig, RepositoryConfig, load_config
from .repository import VerifiedRepository, create_repository
from .schemas import FetchOutcome, FetchRequest, FetchResult, TargetInfo

__all__ = [
    "AppConfig",
    "FetchOutcome",
    "FetchRequest",
    "FetchResult",
    "RepositoryConfig",
    "TargetInfo",
    "VerifiedRepository",
    "create_repository",
    "load_config",
]
