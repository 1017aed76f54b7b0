"""Data structures for the ingest pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..media.media_models import Asset, AssetFile, Job, MediaProcessor, TaskSpec
from ..storage.storage_models import SourceBlob


class PipelineState(StrEnum):
    """Per-event lifecycle; only ``job_submitted`` and ``failed`` are terminal."""

    RECEIVED = "received"
    STAGING = "staging"
    STAGED = "staged"
    JOB_SUBMITTED = "job_submitted"
    FAILED = "failed"


class PipelineStage(StrEnum):
    STAGING = "staging"
    JOB_SUBMISSION = "job_submission"


@dataclass(frozen=True, slots=True)
class PipelineEvent:
    """One triggering event: an uploaded blob and the logical name to use for it."""

    blob: SourceBlob
    name: str
    event_id: str | None = None

    @classmethod
    def for_blob(cls, blob: SourceBlob, *, event_id: str | None = None) -> "PipelineEvent":
        return cls(blob=blob, name=blob.name, event_id=event_id)


@dataclass(slots=True)
class StagedAsset:
    """Asset whose primary file holds the copied source bytes."""

    asset: Asset
    asset_file: AssetFile
    reused: bool = False
    release_error: Exception | None = None


@dataclass(slots=True)
class SubmittedJob:
    job: Job
    processor: MediaProcessor
    task: TaskSpec
    reused: bool = False


@dataclass(slots=True)
class PipelineOutcome:
    """Result of one pipeline run, kept for logging and the trigger response."""

    event: PipelineEvent
    state: PipelineState = PipelineState.RECEIVED
    staged: StagedAsset | None = None
    submitted: SubmittedJob | None = None
    failed_stage: PipelineStage | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.JOB_SUBMITTED

    def fail(self, error: BaseException) -> None:
        self.failed_stage = (
            PipelineStage.JOB_SUBMISSION
            if self.state is PipelineState.STAGED
            else PipelineStage.STAGING
        )
        self.error = error
        self.state = PipelineState.FAILED
