"""Media-services client and entities."""

from .media_client import MediaServicesClient
from .media_models import (
    AccessGrant,
    AccessPermissions,
    AccessPolicy,
    Asset,
    AssetCreationOptions,
    AssetFile,
    Job,
    JobState,
    Locator,
    LocatorType,
    MediaProcessor,
    TaskSpec,
)

__all__ = [
    "AccessGrant",
    "AccessPermissions",
    "AccessPolicy",
    "Asset",
    "AssetCreationOptions",
    "AssetFile",
    "Job",
    "JobState",
    "Locator",
    "LocatorType",
    "MediaProcessor",
    "MediaServicesClient",
    "TaskSpec",
]
