"""Lifecycle-managed bundle of service clients shared by pipeline runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..auth.token_provider import ClientCredentialsTokenProvider
from ..config import AppConfig
from ..media.media_client import MediaServicesClient
from ..storage.storage_client import HttpBlobStorageClient, StorageClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContext:
    """Clients built from configuration and passed into each pipeline stage.

    Holds no per-event state; concurrent runs only share the HTTP connection
    pool and the token cache.
    """

    config: AppConfig
    media: MediaServicesClient
    storage: StorageClient
    http: httpx.AsyncClient | None = None
    owns_http: bool = False

    @classmethod
    def from_config(
        cls, config: AppConfig, *, http: httpx.AsyncClient | None = None
    ) -> "ServiceContext":
        client = http or httpx.AsyncClient(timeout=config.request_timeout_seconds)
        token_provider = ClientCredentialsTokenProvider(
            http=client,
            tenant_domain=config.aad_tenant_domain,
            client_id=config.client_id,
            client_secret=config.client_secret,
            resource=config.media_resource,
            authority_url=config.aad_authority_url,
            refresh_margin_seconds=config.token_refresh_margin_seconds,
        )
        media = MediaServicesClient(
            http=client,
            api_endpoint=config.rest_api_endpoint,
            token_provider=token_provider,
        )
        storage = HttpBlobStorageClient(
            http=client,
            account_url=config.storage_account_url,
            sas_token=config.storage_sas_token,
            chunk_size_bytes=config.copy_chunk_size_bytes,
        )
        logger.info(
            "context.created",
            extra={
                "rest_api_endpoint": config.rest_api_endpoint,
                "storage_account_url": config.storage_account_url,
            },
        )
        return cls(
            config=config, media=media, storage=storage, http=client, owns_http=http is None
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this context created it."""
        if self.http is not None and self.owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "ServiceContext":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()
