"""Submit the encoding job for a staged asset."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

import httpx

from ..config import AppConfig
from ..exceptions import (
    ConfigurationError,
    JobSubmissionError,
    ProcessorNotFoundError,
    VidIngestError,
    translate_service_errors,
)
from ..media.media_models import Asset, AssetCreationOptions, Job, MediaProcessor, TaskSpec
from .pipeline_models import SubmittedJob

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .pipeline_context import ServiceContext

logger = logging.getLogger(__name__)

DEFAULT_PROCESSOR_NAME = "Media Encoder Standard"
DEFAULT_PRESET_NAME = "Adaptive Streaming"
DEFAULT_JOB_NAME = "Azure Function - MES Job"
DEFAULT_TASK_NAME = "Encode with Adaptive Streaming"

_VERSION_PREFIX = re.compile(r"^[vV]")


def parse_version(version: str) -> tuple[int, ...]:
    """Parse a dotted version into a tuple that orders numerically.

    ``"2.10"`` sorts after ``"2.9"``; a leading ``v`` is ignored.
    """
    text = _VERSION_PREFIX.sub("", version.strip())
    try:
        return tuple(int(part) for part in text.split("."))
    except ValueError as exc:
        raise ConfigurationError(f"Unparseable media processor version {version!r}") from exc


def select_latest_processor(processors: Iterable[MediaProcessor], name: str) -> MediaProcessor:
    """Return the highest-versioned processor named exactly ``name``."""
    candidates = [processor for processor in processors if processor.name == name]
    if not candidates:
        raise ProcessorNotFoundError(f"Unknown media processor {name!r}")
    return max(candidates, key=lambda processor: parse_version(processor.version))


@dataclass(slots=True)
class JobSubmitter:
    """Build and submit a single-task encoding job."""

    processor_name: str = DEFAULT_PROCESSOR_NAME
    preset_name: str = DEFAULT_PRESET_NAME
    job_name: str = DEFAULT_JOB_NAME
    task_name: str = DEFAULT_TASK_NAME
    log: logging.Logger = field(default_factory=lambda: logger)

    @classmethod
    def from_config(cls, config: AppConfig) -> "JobSubmitter":
        return cls(
            processor_name=config.processor_name,
            preset_name=config.preset_name,
            job_name=config.job_name,
            task_name=config.task_name,
        )

    async def resolve_processor(self, context: "ServiceContext") -> MediaProcessor:
        with translate_service_errors(JobSubmissionError, operation="list_media_processors"):
            processors = await context.media.list_media_processors(self.processor_name)
        try:
            processor = select_latest_processor(processors, self.processor_name)
        except ConfigurationError:
            self.log.error(
                "submission.processor.not_found",
                extra={"processor_name": self.processor_name, "candidates": len(processors)},
            )
            raise
        self.log.info(
            "submission.processor.selected",
            extra={"processor_id": processor.id, "version": processor.version},
        )
        return processor

    def build_task(
        self, processor: MediaProcessor, asset: Asset, output_asset_name: str
    ) -> TaskSpec:
        return TaskSpec(
            name=self.task_name,
            processor_id=processor.id,
            configuration=self.preset_name,
            input_asset=asset,
            output_asset_name=output_asset_name,
            output_options=AssetCreationOptions.NONE,
        )

    async def find_existing_job(self, context: "ServiceContext", asset: Asset) -> Job | None:
        """Return a job already submitted for ``asset`` that has not failed or been canceled."""
        with translate_service_errors(JobSubmissionError, operation="list_jobs"):
            jobs = await context.media.list_jobs_for_input(asset.id, name=self.job_name)
        return next((job for job in jobs if job.is_active_or_done), None)

    async def submit(
        self,
        context: "ServiceContext",
        asset: Asset,
        output_asset_name: str,
        *,
        check_existing: bool = False,
    ) -> SubmittedJob:
        """Submit the encoding job for ``asset``.

        With ``check_existing`` (set for redelivered events whose asset was
        reused) a live job already fed by the asset is returned instead of
        submitting a duplicate.
        """
        processor = await self.resolve_processor(context)
        task = self.build_task(processor, asset, output_asset_name)
        if check_existing:
            existing = await self.find_existing_job(context, asset)
            if existing is not None:
                self.log.info(
                    "submission.job.reused",
                    extra={"job_id": existing.id, "asset_id": asset.id, "state": existing.state.name},
                )
                return SubmittedJob(job=existing, processor=processor, task=task, reused=True)
        try:
            job = await context.media.submit_job(self.job_name, [task])
        except (VidIngestError, httpx.HTTPError) as exc:
            self.log.error(
                "submission.job.rejected %s",
                exc,
                extra={"asset_id": asset.id, "processor_id": processor.id},
            )
            raise JobSubmissionError(f"Job for asset {asset.id} was rejected: {exc}") from exc

        self.log.info(
            "pipeline.job.submitted",
            extra={
                "job_id": job.id,
                "asset_id": asset.id,
                "processor_id": processor.id,
                "preset": self.preset_name,
            },
        )
        return SubmittedJob(job=job, processor=processor, task=task)
