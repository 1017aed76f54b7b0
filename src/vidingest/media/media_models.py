"""Entities exchanged with the media-services REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum, IntFlag
from typing import Any, Mapping
from urllib.parse import urlparse
from xml.sax.saxutils import quoteattr

from ..storage.storage_models import container_name_from_path


class AccessPermissions(IntFlag):
    NONE = 0
    READ = 1
    WRITE = 2
    DELETE = 4
    LIST = 8


class LocatorType(IntEnum):
    NONE = 0
    SAS = 1
    ON_DEMAND_ORIGIN = 2


class AssetCreationOptions(IntFlag):
    """Encryption flags; ``NONE`` means the asset is stored unencrypted."""

    NONE = 0
    STORAGE_ENCRYPTED = 1
    COMMON_ENCRYPTION_PROTECTED = 2
    ENVELOPE_ENCRYPTION_PROTECTED = 4


class JobState(IntEnum):
    QUEUED = 0
    SCHEDULED = 1
    PROCESSING = 2
    FINISHED = 3
    ERROR = 4
    CANCELED = 5
    CANCELING = 6


def _metadata_uri(payload: Mapping[str, Any]) -> str | None:
    metadata = payload.get("__metadata")
    if isinstance(metadata, Mapping):
        return metadata.get("uri")
    return None


def _expanded(value: Any) -> list[Mapping[str, Any]]:
    """Return the entities of an expanded navigation property, if it was expanded."""
    if isinstance(value, Mapping):
        value = value.get("results")
    if isinstance(value, list):
        return [item for item in value if isinstance(item, Mapping)]
    return []


def _parse_datetime(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(slots=True)
class Asset:
    id: str
    name: str
    options: AssetCreationOptions = AssetCreationOptions.NONE
    alternate_id: str | None = None
    uri: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Asset":
        return cls(
            id=payload["Id"],
            name=payload.get("Name") or "",
            options=AssetCreationOptions(int(payload.get("Options") or 0)),
            alternate_id=payload.get("AlternateId") or None,
            uri=_metadata_uri(payload),
        )


@dataclass(slots=True)
class AssetFile:
    id: str
    name: str
    parent_asset_id: str
    content_file_size: int = 0
    is_primary: bool = False
    mime_type: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AssetFile":
        return cls(
            id=payload["Id"],
            name=payload.get("Name") or "",
            parent_asset_id=payload.get("ParentAssetId") or "",
            content_file_size=int(payload.get("ContentFileSize") or 0),
            is_primary=bool(payload.get("IsPrimary")),
            mime_type=payload.get("MimeType"),
        )


@dataclass(slots=True)
class AccessPolicy:
    id: str
    name: str
    duration: timedelta
    permissions: AccessPermissions

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AccessPolicy":
        return cls(
            id=payload["Id"],
            name=payload.get("Name") or "",
            duration=timedelta(minutes=float(payload.get("DurationInMinutes") or 0)),
            permissions=AccessPermissions(int(payload.get("Permissions") or 0)),
        )


@dataclass(slots=True)
class Locator:
    id: str
    path: str
    asset_id: str
    access_policy_id: str
    expiration: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Locator":
        return cls(
            id=payload["Id"],
            path=payload.get("Path") or "",
            asset_id=payload.get("AssetId") or "",
            access_policy_id=payload.get("AccessPolicyId") or "",
            expiration=_parse_datetime(payload.get("ExpirationDateTime")),
        )


@dataclass(slots=True)
class AccessGrant:
    """Write policy plus SAS locator scoped to one asset container."""

    policy: AccessPolicy
    locator: Locator
    requested_duration: timedelta | None = None

    @property
    def validity(self) -> timedelta:
        """Duration the grant was requested for; the service reply may omit it."""
        return self.requested_duration or self.policy.duration

    @property
    def container_name(self) -> str:
        return container_name_from_path(self.locator.path)

    @property
    def container_url(self) -> str:
        parsed = urlparse(self.locator.path)
        return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip("/")

    @property
    def sas_query(self) -> str:
        return urlparse(self.locator.path).query


@dataclass(slots=True)
class MediaProcessor:
    id: str
    name: str
    version: str
    vendor: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MediaProcessor":
        return cls(
            id=payload["Id"],
            name=payload.get("Name") or "",
            version=str(payload.get("Version") or ""),
            vendor=payload.get("Vendor"),
        )


@dataclass(slots=True)
class TaskSpec:
    """One encoding step: processor, preset, input asset and declared output."""

    name: str
    processor_id: str
    configuration: str
    input_asset: Asset
    output_asset_name: str
    output_options: AssetCreationOptions = AssetCreationOptions.NONE

    def task_body(self, input_index: int = 0, output_index: int = 0) -> str:
        return (
            '<?xml version="1.0" encoding="utf-8"?><taskBody>'
            f"<inputAsset>JobInputAsset({input_index})</inputAsset>"
            f"<outputAsset assetCreationOptions=\"{int(self.output_options)}\" "
            f"assetName={quoteattr(self.output_asset_name)}>"
            f"JobOutputAsset({output_index})</outputAsset>"
            "</taskBody>"
        )


@dataclass(slots=True)
class Job:
    id: str
    name: str
    state: JobState = JobState.QUEUED
    tasks: list[TaskSpec] = field(default_factory=list)
    input_asset_ids: list[str] = field(default_factory=list)

    @property
    def is_active_or_done(self) -> bool:
        return self.state not in (JobState.ERROR, JobState.CANCELED, JobState.CANCELING)

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], *, tasks: list[TaskSpec] | None = None
    ) -> "Job":
        return cls(
            id=payload["Id"],
            name=payload.get("Name") or "",
            state=JobState(int(payload.get("State") or 0)),
            tasks=list(tasks or []),
            input_asset_ids=[
                item["Id"] for item in _expanded(payload.get("InputMediaAssets")) if "Id" in item
            ],
        )
