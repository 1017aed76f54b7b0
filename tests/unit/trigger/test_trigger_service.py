from __future__ import annotations

import logging

import pytest

from src.vidingest.exceptions import (
    BlobCopyError,
    JobSubmissionError,
    MetadataUpdateError,
    ServiceRequestError,
    StagingError,
)
from src.vidingest.pipeline.asset_stager import AssetStager
from src.vidingest.pipeline.job_submitter import JobSubmitter
from src.vidingest.pipeline.pipeline_driver import PipelineDriver
from src.vidingest.trigger.trigger_schemas import EventGridEvent
from src.vidingest.trigger.trigger_service import (
    FailureReason,
    InvalidEventError,
    TriggerService,
    classify_failure,
)


def make_event(event_id: str, url: str | None) -> EventGridEvent:
    data = {"url": url} if url is not None else {}
    return EventGridEvent(id=event_id, eventType="Microsoft.Storage.BlobCreated", data=data)


@pytest.fixture
def service(context) -> TriggerService:
    return TriggerService(
        context=context, driver=PipelineDriver(stager=AssetStager(), submitter=JobSubmitter())
    )


@pytest.mark.asyncio
async def test_handle_blob_created_runs_pipeline(service, storage, media):
    blob = storage.add_blob("clip1.mp4", 2048)

    outcome = await service.handle_blob_created(make_event("evt-1", blob.url))

    assert outcome.succeeded
    assert outcome.event.event_id == "evt-1"
    assert len(media.jobs) == 1


@pytest.mark.asyncio
async def test_event_without_url_is_invalid(service):
    with pytest.raises(InvalidEventError):
        await service.handle_blob_created(make_event("evt-1", None))


@pytest.mark.asyncio
async def test_event_with_malformed_url_is_invalid(service):
    with pytest.raises(InvalidEventError):
        await service.handle_blob_created(make_event("evt-1", "https://uploads.blob.test/only-container"))


@pytest.mark.asyncio
async def test_missing_blob_is_staging_error(service, media, caplog):
    with caplog.at_level(logging.ERROR):
        with pytest.raises(StagingError):
            await service.handle_blob_created(make_event("evt-1", "https://uploads.blob.test/uploads/gone.mp4"))

    assert media.assets == {}
    [record] = [r for r in caplog.records if r.getMessage().startswith("trigger.blob.resolve_failed")]
    assert record.exc_info is not None
    assert isinstance(record.exc_info[1], StagingError)
    assert record.event_id == "evt-1"
    assert record.operation == "get_blob_properties"


@pytest.mark.asyncio
async def test_malformed_url_is_logged_with_traceback(service, caplog):
    with caplog.at_level(logging.ERROR):
        with pytest.raises(InvalidEventError):
            await service.handle_blob_created(make_event("evt-2", "https://uploads.blob.test/only-container"))

    [record] = [r for r in caplog.records if r.getMessage() == "trigger.blob.invalid_url"]
    assert isinstance(record.exc_info[1], ValueError)


@pytest.mark.asyncio
async def test_handle_batch_runs_events_independently(service, storage, media):
    good = storage.add_blob("a.mp4", 100)

    results = await service.handle_batch(
        [make_event("evt-1", good.url), make_event("evt-2", None)]
    )

    assert results[0].succeeded
    assert isinstance(results[1], InvalidEventError)
    assert len(media.jobs) == 1


def test_classify_failure():
    assert classify_failure(InvalidEventError("x")) is FailureReason.INVALID_EVENT
    assert classify_failure(BlobCopyError("x")) is FailureReason.COPY_FAILED
    assert classify_failure(MetadataUpdateError("x")) is FailureReason.METADATA_FAILED
    assert classify_failure(StagingError("x")) is FailureReason.STAGING_FAILED
    assert classify_failure(JobSubmissionError("x")) is FailureReason.SUBMISSION_FAILED
    assert classify_failure(ServiceRequestError("x")) is FailureReason.SERVICE_ERROR
    assert classify_failure(RuntimeError("x")) is FailureReason.INTERNAL_ERROR
