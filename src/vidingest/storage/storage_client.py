"""Blob storage client used to read uploads and fill asset containers."""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote, urlencode, urlparse
from xml.sax.saxutils import escape

import httpx

from ..exceptions import ServiceRequestError
from .storage_models import BlobDestination, SourceBlob, split_blob_url

logger = logging.getLogger(__name__)

STORAGE_API_VERSION = "2021-08-06"
CONTAINER_ALREADY_EXISTS = "ContainerAlreadyExists"


class StorageClient(Protocol):
    """Capabilities the pipeline needs from blob storage."""

    async def get_blob(self, url: str) -> SourceBlob:
        """Return properties of the blob at ``url``."""

    def open_read(self, blob: SourceBlob) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Open a streaming read of ``blob``'s content."""

    async def create_container_if_not_exists(self, container_name: str) -> bool:
        """Create a container; return ``False`` when it already existed."""

    async def container_exists(self, container_name: str) -> bool:
        """Return whether ``container_name`` exists."""

    async def upload_stream(
        self,
        destination: BlobDestination,
        chunks: AsyncIterator[bytes],
        *,
        content_type: str,
    ) -> int:
        """Upload ``chunks`` as a block blob and return the number of bytes written."""


@dataclass(slots=True)
class HttpBlobStorageClient:
    """Blob service REST client over a shared ``httpx.AsyncClient``.

    Source reads and container management use the account SAS; uploads into
    asset containers use the SAS carried by the destination.
    """

    http: httpx.AsyncClient
    account_url: str
    sas_token: str = ""
    chunk_size_bytes: int = 4 * 1024 * 1024
    log: logging.Logger = field(default_factory=lambda: logger)

    async def get_blob(self, url: str) -> SourceBlob:
        _, _, blob_name = split_blob_url(url)
        response = await self.http.head(self._signed(url), headers=_headers())
        _raise_for_status(response, operation="get_blob_properties")

        content_length = response.headers.get("Content-Length")
        if content_length is None:
            raise ServiceRequestError(
                f"Blob {blob_name!r} has no Content-Length",
                status_code=response.status_code,
                operation="get_blob_properties",
            )
        return SourceBlob(
            name=blob_name,
            size_bytes=int(content_length),
            url=url.split("?", 1)[0],
            sas_query=urlparse(url).query,
            content_md5=response.headers.get("Content-MD5"),
            content_type=response.headers.get("Content-Type", "application/octet-stream"),
        )

    def open_read(self, blob: SourceBlob) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        return self._open_read(blob)

    @asynccontextmanager
    async def _open_read(self, blob: SourceBlob) -> AsyncIterator[AsyncIterator[bytes]]:
        async with self.http.stream("GET", self._read_url(blob), headers=_headers()) as response:
            if response.is_error:
                await response.aread()
                _raise_for_status(response, operation="read_blob")
            yield response.aiter_bytes(self.chunk_size_bytes)

    async def create_container_if_not_exists(self, container_name: str) -> bool:
        url = self._container_url(container_name, restype="container")
        response = await self.http.put(url, headers=_headers())
        if response.status_code == 201:
            self.log.info("storage.container.created", extra={"container": container_name})
            return True
        if response.status_code == 409 and _error_code(response) == CONTAINER_ALREADY_EXISTS:
            self.log.debug("storage.container.exists", extra={"container": container_name})
            return False
        _raise_for_status(response, operation="create_container")
        return True

    async def container_exists(self, container_name: str) -> bool:
        url = self._container_url(container_name, restype="container")
        response = await self.http.head(url, headers=_headers())
        if response.status_code == 404:
            return False
        _raise_for_status(response, operation="get_container_properties")
        return True

    async def upload_stream(
        self,
        destination: BlobDestination,
        chunks: AsyncIterator[bytes],
        *,
        content_type: str,
    ) -> int:
        block_ids: list[str] = []
        buffer = bytearray()
        written = 0

        async for chunk in chunks:
            buffer.extend(chunk)
            while len(buffer) >= self.chunk_size_bytes:
                block = bytes(buffer[: self.chunk_size_bytes])
                del buffer[: self.chunk_size_bytes]
                await self._put_block(destination, block_ids, block)
                written += len(block)
        if buffer:
            await self._put_block(destination, block_ids, bytes(buffer))
            written += len(buffer)

        await self._put_block_list(destination, block_ids, content_type=content_type)
        self.log.info(
            "storage.upload.committed",
            extra={"blob": destination.blob_name, "blocks": len(block_ids), "bytes": written},
        )
        return written

    async def _put_block(
        self, destination: BlobDestination, block_ids: list[str], block: bytes
    ) -> None:
        block_id = _block_id(len(block_ids))
        url = _compose_url(
            destination.url, destination.sas_query, comp="block", blockid=block_id
        )
        response = await self.http.put(url, content=block, headers=_headers())
        _raise_for_status(response, operation="put_block")
        block_ids.append(block_id)

    async def _put_block_list(
        self, destination: BlobDestination, block_ids: list[str], *, content_type: str
    ) -> None:
        body = "".join(f"<Latest>{escape(block_id)}</Latest>" for block_id in block_ids)
        xml = f'<?xml version="1.0" encoding="utf-8"?><BlockList>{body}</BlockList>'
        url = _compose_url(destination.url, destination.sas_query, comp="blocklist")
        headers = _headers()
        headers["x-ms-blob-content-type"] = content_type
        response = await self.http.put(url, content=xml.encode("utf-8"), headers=headers)
        _raise_for_status(response, operation="put_block_list")

    def _container_url(self, container_name: str, **params: str) -> str:
        base = f"{self.account_url.rstrip('/')}/{quote(container_name)}"
        return _compose_url(base, self.sas_token, **params)

    def _read_url(self, blob: SourceBlob) -> str:
        """Sign reads with the SAS the blob was addressed with, else the account SAS."""
        if blob.sas_query:
            return _compose_url(blob.url, blob.sas_query)
        return self._signed(blob.url)

    def _signed(self, url: str) -> str:
        if urlparse(url).query or not self.sas_token:
            return url
        return _compose_url(url, self.sas_token)


def _headers() -> dict[str, str]:
    return {"x-ms-version": STORAGE_API_VERSION}


def _block_id(index: int) -> str:
    return base64.b64encode(f"block-{index:08d}".encode("ascii")).decode("ascii")


def _compose_url(base: str, sas_query: str, **params: str) -> str:
    query_parts = [part for part in (urlencode(params), sas_query.lstrip("?")) if part]
    if not query_parts:
        return base
    return f"{base}?{'&'.join(query_parts)}"


_XML_CODE = re.compile(r"<Code>([^<]+)</Code>")


def _error_code(response: httpx.Response) -> str | None:
    code = response.headers.get("x-ms-error-code")
    if code:
        return code
    match = _XML_CODE.search(response.text or "")
    return match.group(1) if match else None


def _raise_for_status(response: httpx.Response, *, operation: str) -> None:
    if response.is_success:
        return
    code = _error_code(response)
    raise ServiceRequestError(
        f"Storage {operation} failed (status={response.status_code}, code={code})",
        status_code=response.status_code,
        error_code=code,
        operation=operation,
    )
