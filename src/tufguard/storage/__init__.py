"""Storage layer for verified metadata cache."""

from .cache import FileCache

__all__ = ["FileCache"]
