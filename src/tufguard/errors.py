from __future__ import annotations


class TufGuardError(Exception):
    """Base error carrying the file and repository a failure relates to."""

    def __init__(
        self,
        message: str,
        *,
        filename: str | None = None,
        repository_url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.repository_url = repository_url


class TrustError(TufGuardError):
    """The trust oracle could not establish or use its root of trust."""


class TargetNotFoundError(TrustError):
    """The requested path is not a registered target."""


class InvalidSignatureError(TrustError):
    """Trust metadata failed signature verification."""


class SecurityError(TufGuardError):
    """Hash disagreement or trust failure. Never retried."""


class NotFoundError(TufGuardError):
    """The transport reported that the resource does not exist."""


class TransportError(TufGuardError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        filename: str | None = None,
        repository_url: str | None = None,
    ) -> None:
        super().__init__(message, filename=filename, repository_url=repository_url)
        self.status_code = status_code


class ContentHashMismatch(TufGuardError):
    """Downloaded bytes do not match the expected sha256."""

    def __init__(
        self,
        *,
        filename: str,
        expected: str,
        actual: str,
        repository_url: str | None = None,
    ) -> None:
        super().__init__(
            f"sha256 mismatch for {filename}: expected {expected}, got {actual}",
            filename=filename,
            repository_url=repository_url,
        )
        self.expected = expected
        self.actual = actual


class MetadataDecodeError(TufGuardError):
    """Verified bytes could not be decoded as a JSON object."""


class FetchLogicError(RuntimeError):
    pass
