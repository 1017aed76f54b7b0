from __future__ import annotations

import logging

import pytest

from src.vidingest.exceptions import BlobCopyError, ProcessorNotFoundError
from src.vidingest.media.media_models import MediaProcessor
from src.vidingest.pipeline.asset_stager import AssetStager
from src.vidingest.pipeline.job_submitter import JobSubmitter
from src.vidingest.pipeline.pipeline_driver import PipelineDriver
from src.vidingest.pipeline.pipeline_models import (
    PipelineEvent,
    PipelineOutcome,
    PipelineStage,
    PipelineState,
)
from tests.mocks.media_services import service_error
from tests.mocks.storage import storage_error


def build_driver() -> PipelineDriver:
    return PipelineDriver(stager=AssetStager(), submitter=JobSubmitter())


@pytest.mark.asyncio
async def test_run_stages_then_submits(context, media, storage):
    blob = storage.add_blob("clip1.mp4", 1024)

    outcome = await build_driver().run(context, PipelineEvent.for_blob(blob, event_id="evt-1"))

    assert outcome.succeeded
    assert outcome.state is PipelineState.JOB_SUBMITTED
    assert outcome.staged is not None and outcome.submitted is not None
    assert outcome.submitted.task.input_asset.id == outcome.staged.asset.id
    assert outcome.submitted.task.output_asset_name == "clip1.mp4"
    names = [name for name, _ in media.events]
    assert names.index("update_asset") < names.index("submit_job")


@pytest.mark.asyncio
async def test_staging_failure_skips_submission_and_reraises(context, media, storage, caplog):
    storage.upload_error = storage_error("put_block", 500)
    blob = storage.add_blob("clip1.mp4", 1024)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(BlobCopyError):
            await build_driver().run(context, PipelineEvent.for_blob(blob))

    assert not media.calls("list_media_processors")
    assert media.jobs == []
    [record] = [r for r in caplog.records if r.getMessage().startswith("pipeline.failed")]
    assert record.exc_info is not None
    assert record.operation == "staging"
    assert record.error_type == "BlobCopyError"


@pytest.mark.asyncio
async def test_submission_failure_leaves_staged_asset(context, media, storage, caplog):
    media.processors = [MediaProcessor(id="p", name="Other", version="1.0")]
    blob = storage.add_blob("clip1.mp4", 1024)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(ProcessorNotFoundError):
            await build_driver().run(context, PipelineEvent.for_blob(blob))

    assert len(media.assets) == 1
    assert len(storage.uploads) == 1
    [record] = [r for r in caplog.records if r.getMessage().startswith("pipeline.failed")]
    assert record.operation == "job_submission"


@pytest.mark.asyncio
async def test_errors_are_reraised_unchanged(context, media, storage):
    error = service_error("create_asset")
    media.fail_on["create_asset"] = error
    blob = storage.add_blob("clip1.mp4", 1024)

    with pytest.raises(Exception) as excinfo:
        await build_driver().run(context, PipelineEvent.for_blob(blob))

    assert excinfo.value.__cause__ is error
    assert media.calls("create_asset") == ["clip1.mp4"]


@pytest.mark.asyncio
async def test_no_retry_on_failure(context, media, storage):
    media.fail_on["create_access_policy"] = service_error("create_access_policy")
    blob = storage.add_blob("clip1.mp4", 1024)

    with pytest.raises(Exception):
        await build_driver().run(context, PipelineEvent.for_blob(blob))

    assert len(media.calls("create_access_policy")) == 1


@pytest.mark.asyncio
async def test_custom_event_name_is_used_for_asset_and_output(context, media, storage):
    blob = storage.add_blob("upload-42.mp4", 1024)

    outcome = await build_driver().run(context, PipelineEvent(blob=blob, name="Launch Trailer"))

    assert outcome.staged.asset.name == "Launch Trailer"
    assert outcome.submitted.task.output_asset_name == "Launch Trailer"


def test_outcome_fail_records_stage(storage):
    event = PipelineEvent.for_blob(storage.add_blob("a.mp4", 1))
    staging = PipelineOutcome(event=event, state=PipelineState.STAGING)
    submitting = PipelineOutcome(event=event, state=PipelineState.STAGED)

    staging.fail(RuntimeError("x"))
    submitting.fail(RuntimeError("y"))

    assert staging.failed_stage is PipelineStage.STAGING
    assert submitting.failed_stage is PipelineStage.JOB_SUBMISSION
    assert staging.state is PipelineState.FAILED and not staging.succeeded


def test_from_config_wires_configured_values(app_config):
    config = app_config.model_copy(update={"grant_duration_minutes": 30, "processor_name": "X"})

    driver = PipelineDriver.from_config(config)

    assert driver.stager.grant_duration.total_seconds() == 1800
    assert driver.submitter.processor_name == "X"


@pytest.mark.asyncio
async def test_redelivered_event_keeps_single_job(context, media, storage):
    blob = storage.add_blob("clip1.mp4", 1024, content_md5="q2+Zh1qB1e3Xf0Jb4a0JxA==")
    driver = build_driver()

    first = await driver.run(context, PipelineEvent.for_blob(blob, event_id="evt-1"))
    second = await driver.run(context, PipelineEvent.for_blob(blob, event_id="evt-1"))

    assert second.state is PipelineState.JOB_SUBMITTED
    assert second.staged.reused is True
    assert second.submitted.reused is True
    assert second.submitted.job.id == first.submitted.job.id
    assert len(media.jobs) == 1
