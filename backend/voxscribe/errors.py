"""Domain exception taxonomy.

Every error derives from :class:`AppBaseException` so the FastAPI layer can
map it to a JSON response with a single handler.  Errors raised during the
background phase never reach that handler; the orchestrator turns them into
a failed job instead.
"""

from __future__ import annotations


class AppBaseException(Exception):
    """Domain-level base exception so we can map to JSON responses easily."""

    status_code: int = 500

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class InvalidSourceError(AppBaseException):
    """Malformed or unsupported input (URL, empty upload, unknown extension)."""

    status_code = 400


class UploadTooLargeError(AppBaseException):
    status_code = 413


class MissingCredentialError(AppBaseException):
    status_code = 400

    def __init__(self, provider: str) -> None:
        super().__init__(f"An API key is required for provider '{provider}'")
        self.provider = provider


class UnknownProviderError(AppBaseException):
    status_code = 400

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported transcription provider: {provider}")
        self.provider = provider


class ConversionError(AppBaseException):
    """Decoding or re-encoding media failed; never retried."""

    status_code = 422


class RemoteMediaError(AppBaseException):
    """Downloading or normalizing remote media failed."""

    status_code = 502

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch audio from {url}: {reason}")
        self.url = url
        self.reason = reason


class ProviderError(AppBaseException):
    """Any upstream transcription-service failure, tagged with the provider name.

    ``kind`` classifies where the failure happened: ``request``, ``upload``,
    ``submit``, ``remote``, ``timeout``, ``response`` or ``translate``.
    """

    status_code = 502

    TIMEOUT = "timeout"

    def __init__(self, provider: str, message: str, kind: str = "request") -> None:
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.kind = kind

    @property
    def is_timeout(self) -> bool:
        return self.kind == self.TIMEOUT


class NotFoundError(AppBaseException):
    status_code = 404


class JobNotCompletedError(AppBaseException):
    status_code = 409
