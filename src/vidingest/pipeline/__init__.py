"""Asset staging and job submission pipeline."""

from .asset_stager import AssetStager
from .job_submitter import JobSubmitter, parse_version, select_latest_processor
from .pipeline_context import ServiceContext
from .pipeline_driver import PipelineDriver
from .pipeline_models import (
    PipelineEvent,
    PipelineOutcome,
    PipelineStage,
    PipelineState,
    StagedAsset,
    SubmittedJob,
)

__all__ = [
    "AssetStager",
    "JobSubmitter",
    "PipelineDriver",
    "PipelineEvent",
    "PipelineOutcome",
    "PipelineStage",
    "PipelineState",
    "ServiceContext",
    "StagedAsset",
    "SubmittedJob",
    "parse_version",
    "select_latest_processor",
]
