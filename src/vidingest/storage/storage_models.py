"""Data structures describing blobs on either side of a copy."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote, unquote, urlparse


@dataclass(frozen=True, slots=True)
class SourceBlob:
    """Reference to raw uploaded bytes; read-only to the pipeline."""

    name: str
    size_bytes: int
    url: str
    content_md5: str | None = None
    content_type: str = "application/octet-stream"
    sas_query: str = field(default="", repr=False)


@dataclass(frozen=True, slots=True)
class BlobDestination:
    """Target block blob addressed through a container SAS."""

    container_url: str
    blob_name: str
    sas_query: str = ""

    @property
    def url(self) -> str:
        return f"{self.container_url.rstrip('/')}/{quote(self.blob_name)}"


def split_blob_url(url: str) -> tuple[str, str, str]:
    """Return ``(account_url, container_name, blob_name)`` for a blob URL."""
    parsed = urlparse(url)
    segments = parsed.path.lstrip("/").split("/", 1)
    if len(segments) != 2 or not segments[0] or not segments[1]:
        raise ValueError(f"Not a blob URL: {url!r}")
    account_url = f"{parsed.scheme}://{parsed.netloc}"
    return account_url, unquote(segments[0]), unquote(segments[1])


def container_name_from_path(path: str) -> str:
    """Return the container addressed by a locator path (its first path segment)."""
    segments = [segment for segment in urlparse(path).path.split("/") if segment]
    if not segments:
        raise ValueError(f"Locator path has no container segment: {path!r}")
    return unquote(segments[0])
