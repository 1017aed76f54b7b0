"""Run asset staging and job submission for one triggering event."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from ..config import AppConfig
from .asset_stager import AssetStager
from .job_submitter import JobSubmitter
from .pipeline_models import PipelineEvent, PipelineOutcome, PipelineState

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .pipeline_context import ServiceContext

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineDriver:
    """Sequence staging before submission and report the outcome.

    There is no retry here: a failure is logged once with its stack and
    re-raised unchanged so the delivering system can redeliver the event.
    """

    stager: AssetStager
    submitter: JobSubmitter
    log: logging.Logger = field(default_factory=lambda: logger)

    @classmethod
    def from_config(cls, config: AppConfig) -> "PipelineDriver":
        return cls(
            stager=AssetStager.from_config(config),
            submitter=JobSubmitter.from_config(config),
        )

    async def run(self, context: "ServiceContext", event: PipelineEvent) -> PipelineOutcome:
        outcome = PipelineOutcome(event=event)
        with structlog.contextvars.bound_contextvars(
            event_id=event.event_id, blob_name=event.name
        ):
            self.log.info(
                "pipeline.received",
                extra={"size_bytes": event.blob.size_bytes, "blob_url": event.blob.url},
            )
            try:
                self._advance(outcome, PipelineState.STAGING)
                outcome.staged = await self.stager.stage(context, event.blob, event.name)
                self._advance(outcome, PipelineState.STAGED)
                outcome.submitted = await self.submitter.submit(
                    context,
                    outcome.staged.asset,
                    event.name,
                    check_existing=outcome.staged.reused,
                )
                self._advance(outcome, PipelineState.JOB_SUBMITTED)
            except Exception as exc:
                outcome.fail(exc)
                self.log.error(
                    "pipeline.failed operation=%s error=%s",
                    outcome.failed_stage,
                    exc,
                    exc_info=exc,
                    extra={
                        "operation": str(outcome.failed_stage),
                        "error_type": type(exc).__name__,
                    },
                )
                raise
        return outcome

    def _advance(self, outcome: PipelineOutcome, state: PipelineState) -> None:
        outcome.state = state
        self.log.debug("pipeline.state", extra={"state": str(state)})
