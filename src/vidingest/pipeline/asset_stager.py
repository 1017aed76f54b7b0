"""Stage an uploaded blob as a media-services asset."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx

from ..config import AppConfig
from ..exceptions import (
    BlobCopyError,
    ContainerCreationError,
    GrantIssueError,
    GrantReleaseError,
    MetadataUpdateError,
    StagingError,
    VidIngestError,
    translate_service_errors,
)
from ..media.media_models import AccessGrant, AccessPermissions, Asset, AssetFile
from ..storage.storage_models import BlobDestination, SourceBlob
from .pipeline_models import StagedAsset

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .pipeline_context import ServiceContext

logger = logging.getLogger(__name__)

DEFAULT_GRANT_DURATION = timedelta(hours=4)
WRITE_POLICY_NAME = "writePolicy"

_SERVICE_ERRORS = (VidIngestError, httpx.HTTPError)


@dataclass(slots=True)
class AssetStager:
    """Create an asset, copy the blob into its container and register the file.

    The write grant lives only for the duration of the copy: it is issued
    right before the container is prepared and released as soon as the copy
    concludes, whatever the outcome. A partially staged asset is left in place
    when a later step fails.
    """

    grant_duration: timedelta = DEFAULT_GRANT_DURATION
    max_grant_duration: timedelta = timedelta(hours=24)
    min_throughput_bytes_per_second: int | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    @classmethod
    def from_config(cls, config: AppConfig) -> "AssetStager":
        return cls(
            grant_duration=config.grant_duration,
            max_grant_duration=config.grant_max_duration,
            min_throughput_bytes_per_second=config.grant_min_throughput_bytes_per_second,
        )

    def grant_duration_for(self, blob: SourceBlob) -> timedelta:
        """Return the grant validity for ``blob``, scaled with its size when configured."""
        if not self.min_throughput_bytes_per_second:
            return self.grant_duration
        needed = timedelta(
            seconds=math.ceil(blob.size_bytes / self.min_throughput_bytes_per_second)
        )
        return min(max(self.grant_duration, needed), self.max_grant_duration)

    async def stage(
        self, context: "ServiceContext", blob: SourceBlob, asset_name: str
    ) -> StagedAsset:
        reusable = await self._find_reusable(context, blob, asset_name)
        if reusable is not None:
            self.log.info(
                "staging.asset.reused",
                extra={"asset_id": reusable.asset.id, "asset_name": asset_name},
            )
            return reusable

        with translate_service_errors(StagingError, operation="create_asset"):
            asset = await context.media.create_asset(asset_name, alternate_id=blob.content_md5)
        self.log.info(
            "staging.asset.created",
            extra={"asset_id": asset.id, "asset_name": asset.name},
        )

        grant = await self._issue_grant(context, asset, self.grant_duration_for(blob))
        try:
            await self._ensure_container(context, grant.container_name)
            await self._copy(context, blob, grant)
        except BaseException as exc:
            await self._release_grant(context, grant, primary=exc)
            raise
        release_error = await self._release_grant(context, grant)

        asset_file = await self._register_primary_file(context, asset, blob)
        return StagedAsset(asset=asset, asset_file=asset_file, release_error=release_error)

    async def _find_reusable(
        self, context: "ServiceContext", blob: SourceBlob, asset_name: str
    ) -> StagedAsset | None:
        """Return an earlier, fully staged asset for the same name and checksum."""
        if not blob.content_md5:
            return None
        with translate_service_errors(StagingError, operation="find_existing_asset"):
            candidates = await context.media.list_assets_by_name(asset_name)
            for asset in candidates:
                if asset.alternate_id != blob.content_md5:
                    continue
                files = await context.media.list_asset_files(asset.id)
                for asset_file in files:
                    if asset_file.is_primary and asset_file.content_file_size == blob.size_bytes:
                        return StagedAsset(asset=asset, asset_file=asset_file, reused=True)
        return None

    async def _issue_grant(
        self, context: "ServiceContext", asset: Asset, duration: timedelta
    ) -> AccessGrant:
        try:
            policy = await context.media.create_access_policy(
                WRITE_POLICY_NAME, duration=duration, permissions=AccessPermissions.WRITE
            )
        except _SERVICE_ERRORS as exc:
            raise GrantIssueError(f"Access policy for asset {asset.id} failed: {exc}") from exc

        try:
            locator = await context.media.create_locator(asset, policy)
        except _SERVICE_ERRORS as exc:
            try:
                await context.media.delete_access_policy(policy.id)
            except _SERVICE_ERRORS as cleanup_exc:
                self.log.error(
                    "staging.grant.policy_cleanup_failed",
                    exc_info=cleanup_exc,
                    extra={"asset_id": asset.id, "policy_id": policy.id},
                )
                exc.add_note(f"access policy {policy.id} could not be deleted: {cleanup_exc}")
            raise GrantIssueError(f"Locator for asset {asset.id} failed: {exc}") from exc

        self.log.info(
            "staging.grant.issued",
            extra={
                "asset_id": asset.id,
                "locator_id": locator.id,
                "duration_minutes": duration.total_seconds() / 60,
            },
        )
        return AccessGrant(policy=policy, locator=locator, requested_duration=duration)

    async def _ensure_container(self, context: "ServiceContext", container_name: str) -> None:
        try:
            await context.storage.create_container_if_not_exists(container_name)
        except _SERVICE_ERRORS as exc:
            self.log.error(
                "staging.container.create_failed %s",
                exc,
                extra={"container": container_name},
            )
            try:
                exists = await context.storage.container_exists(container_name)
            except _SERVICE_ERRORS:
                exists = False
            if exists:
                self.log.warning(
                    "staging.container.create_race", extra={"container": container_name}
                )
                return
            raise ContainerCreationError(
                f"Container {container_name!r} could not be created: {exc}"
            ) from exc

    async def _copy(
        self, context: "ServiceContext", blob: SourceBlob, grant: AccessGrant
    ) -> None:
        destination = BlobDestination(
            container_url=grant.container_url,
            blob_name=blob.name,
            sas_query=grant.sas_query,
        )
        # The grant stops accepting writes at expiry; stop waiting at the same point.
        deadline = grant.validity.total_seconds()
        try:
            async with asyncio.timeout(deadline):
                async with context.storage.open_read(blob) as chunks:
                    written = await context.storage.upload_stream(
                        destination, chunks, content_type=blob.content_type
                    )
        except TimeoutError as exc:
            self.log.error(
                "staging.copy.expired",
                extra={"blob_name": blob.name, "deadline_seconds": deadline},
            )
            raise BlobCopyError(
                f"Copy of {blob.name!r} exceeded the access grant validity"
            ) from exc
        except (*_SERVICE_ERRORS, OSError) as exc:
            self.log.error(
                "staging.copy.failed %s", exc, extra={"blob_name": blob.name}
            )
            raise BlobCopyError(f"Copy of {blob.name!r} failed: {exc}") from exc

        if written != blob.size_bytes:
            self.log.error(
                "staging.copy.short",
                extra={"blob_name": blob.name, "written": written, "expected": blob.size_bytes},
            )
            raise BlobCopyError(
                f"Copy of {blob.name!r} wrote {written} of {blob.size_bytes} bytes"
            )
        self.log.info(
            "staging.copy.completed",
            extra={"blob_name": blob.name, "bytes": written, "container": grant.container_name},
        )

    async def _release_grant(
        self,
        context: "ServiceContext",
        grant: AccessGrant,
        *,
        primary: BaseException | None = None,
    ) -> GrantReleaseError | None:
        """Delete the locator, then the policy; report failures without raising."""
        failures: list[Exception] = []
        for label, release in (
            ("locator", lambda: context.media.delete_locator(grant.locator.id)),
            ("policy", lambda: context.media.delete_access_policy(grant.policy.id)),
        ):
            try:
                await release()
            except _SERVICE_ERRORS as exc:
                failures.append(exc)
                self.log.error(
                    "staging.grant.release_failed %s",
                    label,
                    exc_info=exc,
                    extra={
                        "locator_id": grant.locator.id,
                        "policy_id": grant.policy.id,
                    },
                )

        if not failures:
            self.log.info("staging.grant.released", extra={"locator_id": grant.locator.id})
            return None

        error = GrantReleaseError(
            f"Access grant {grant.locator.id} release incomplete: "
            + "; ".join(str(failure) for failure in failures)
        )
        error.__cause__ = failures[0]
        if primary is not None:
            primary.add_note(str(error))
        return error

    async def _register_primary_file(
        self, context: "ServiceContext", asset: Asset, blob: SourceBlob
    ) -> AssetFile:
        try:
            asset_file = await context.media.create_asset_file(
                asset, blob.name, mime_type=blob.content_type
            )
            asset_file.content_file_size = blob.size_bytes
            asset_file.is_primary = True
            await context.media.update_asset_file(asset_file)
            await context.media.update_asset(asset)
        except _SERVICE_ERRORS as exc:
            self.log.error(
                "staging.metadata.failed %s", exc, extra={"asset_id": asset.id}
            )
            raise MetadataUpdateError(
                f"Registering {blob.name!r} on asset {asset.id} failed: {exc}"
            ) from exc
        self.log.info(
            "staging.metadata.updated",
            extra={"asset_id": asset.id, "file_id": asset_file.id, "size_bytes": blob.size_bytes},
        )
        return asset_file
