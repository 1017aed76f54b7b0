"""Turn delivered blob-created events into pipeline runs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from ..exceptions import (
    BlobCopyError,
    ConfigurationError,
    JobSubmissionError,
    MetadataUpdateError,
    ServiceRequestError,
    StagingError,
    VidIngestError,
    translate_service_errors,
)
from ..pipeline.pipeline_context import ServiceContext
from ..pipeline.pipeline_driver import PipelineDriver
from ..pipeline.pipeline_models import PipelineEvent, PipelineOutcome
from .trigger_schemas import EventGridEvent

logger = logging.getLogger(__name__)


class FailureReason(StrEnum):
    """Failure reasons reported back to the delivering system."""

    INVALID_EVENT = "invalid_event"
    CONFIGURATION_ERROR = "configuration_error"
    COPY_FAILED = "copy_failed"
    METADATA_FAILED = "metadata_failed"
    STAGING_FAILED = "staging_failed"
    SUBMISSION_FAILED = "submission_failed"
    SERVICE_ERROR = "service_error"
    INTERNAL_ERROR = "internal_error"


class InvalidEventError(VidIngestError):
    """Raised when a delivered event does not reference a readable blob."""


def classify_failure(exc: BaseException) -> FailureReason:
    if isinstance(exc, InvalidEventError):
        return FailureReason.INVALID_EVENT
    if isinstance(exc, ConfigurationError):
        return FailureReason.CONFIGURATION_ERROR
    if isinstance(exc, BlobCopyError):
        return FailureReason.COPY_FAILED
    if isinstance(exc, MetadataUpdateError):
        return FailureReason.METADATA_FAILED
    if isinstance(exc, StagingError):
        return FailureReason.STAGING_FAILED
    if isinstance(exc, JobSubmissionError):
        return FailureReason.SUBMISSION_FAILED
    if isinstance(exc, ServiceRequestError):
        return FailureReason.SERVICE_ERROR
    return FailureReason.INTERNAL_ERROR


@dataclass(slots=True)
class TriggerService:
    """Resolve the uploaded blob for each event and run the pipeline on it."""

    context: ServiceContext
    driver: PipelineDriver
    log: logging.Logger = field(default_factory=lambda: logger)

    async def handle_blob_created(self, event: EventGridEvent) -> PipelineOutcome:
        blob_url = event.blob_url
        if not blob_url:
            self.log.warning("trigger.event.missing_url", extra={"event_id": event.id})
            raise InvalidEventError(f"Event {event.id} does not carry a blob url")

        try:
            with translate_service_errors(StagingError, operation="get_blob_properties"):
                blob = await self.context.storage.get_blob(blob_url)
        except ValueError as exc:
            self.log.error(
                "trigger.blob.invalid_url", exc_info=exc, extra={"event_id": event.id}
            )
            raise InvalidEventError(f"Event {event.id} has an invalid blob url") from exc
        except StagingError as exc:
            self.log.error(
                "trigger.blob.resolve_failed operation=get_blob_properties error=%s",
                exc,
                exc_info=exc,
                extra={"event_id": event.id, "operation": "get_blob_properties"},
            )
            raise
        return await self.driver.run(
            self.context, PipelineEvent.for_blob(blob, event_id=event.id)
        )

    async def handle_batch(
        self, events: list[EventGridEvent]
    ) -> list[PipelineOutcome | BaseException]:
        """Run independent events concurrently; failures are returned, not raised."""
        return await asyncio.gather(
            *(self.handle_blob_created(event) for event in events),
            return_exceptions=True,
        )
