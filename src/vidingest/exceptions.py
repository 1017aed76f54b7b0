"""Domain level exceptions and helpers for the ingest pipeline."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import httpx

__all__ = [
    "VidIngestError",
    "ConfigurationError",
    "ProcessorNotFoundError",
    "ServiceRequestError",
    "AuthenticationError",
    "StagingError",
    "GrantIssueError",
    "ContainerCreationError",
    "BlobCopyError",
    "MetadataUpdateError",
    "GrantReleaseError",
    "JobSubmissionError",
    "translate_service_errors",
]


class VidIngestError(Exception):
    """Base class for application specific errors."""


class ConfigurationError(VidIngestError):
    """Raised when static configuration cannot be satisfied."""


class ProcessorNotFoundError(ConfigurationError):
    """Raised when no media processor matches the requested name."""


class ServiceRequestError(VidIngestError):
    """Raised when storage or media services reject a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.operation = operation


class AuthenticationError(ServiceRequestError):
    """Raised when a bearer token cannot be obtained or is refused."""


class StagingError(VidIngestError):
    """Base class for asset staging failures."""


class GrantIssueError(StagingError):
    """Raised when the write access grant cannot be issued."""


class ContainerCreationError(StagingError):
    """Raised when the destination container cannot be created."""


class BlobCopyError(StagingError):
    """Raised when streaming the source blob into the asset container fails."""


class MetadataUpdateError(StagingError):
    """Raised when registering the copied file on the asset fails."""


class GrantReleaseError(StagingError):
    """Raised when the locator or access policy could not be deleted."""


class JobSubmissionError(VidIngestError):
    """Raised when the encoding job is rejected by media services."""


@contextmanager
def translate_service_errors(
    error_cls: type[VidIngestError], *, operation: str
) -> Iterator[None]:
    """Translate transport and service errors into ``error_cls``.

    Errors already of type ``error_cls`` pass through untouched.
    """
    try:
        yield
    except error_cls:
        raise
    except (VidIngestError, httpx.HTTPError) as exc:
        raise error_cls(f"{operation} failed: {exc}") from exc
