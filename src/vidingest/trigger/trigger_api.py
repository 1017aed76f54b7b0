"""HTTP routes receiving blob-created event deliveries."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..exceptions import VidIngestError
from ..pipeline.pipeline_models import PipelineOutcome
from .trigger_schemas import (
    BLOB_CREATED_EVENT,
    SUBSCRIPTION_VALIDATION_EVENT,
    EventGridEvent,
    SubmittedEventSchema,
    TriggerResponseSchema,
)
from .trigger_service import TriggerService, classify_failure

router = APIRouter(prefix="/api/events", tags=["events"])
logger = logging.getLogger(__name__)


def get_trigger_service(request: Request) -> TriggerService:
    """Fetch trigger service from application state."""
    try:
        return request.app.state.trigger_service  # type: ignore[attr-defined]
    except AttributeError as exc:
        raise RuntimeError("TriggerService is not configured") from exc


@router.post("/blob-created", status_code=status.HTTP_202_ACCEPTED)
async def receive_blob_created(
    events: list[EventGridEvent],
    service: TriggerService = Depends(get_trigger_service),
):
    """Run the pipeline for each delivered blob; any failure answers 500 so the event is redelivered."""
    for event in events:
        if event.event_type == SUBSCRIPTION_VALIDATION_EVENT:
            logger.info("trigger.subscription.validated", extra={"event_id": event.id})
            return JSONResponse({"validationResponse": event.validation_code})

    blob_events = [event for event in events if event.event_type == BLOB_CREATED_EVENT]
    skipped = [event.id for event in events if event.event_type != BLOB_CREATED_EVENT]
    if skipped:
        logger.info("trigger.events.skipped", extra={"event_ids": skipped})

    outcomes = await service.handle_batch(blob_events)

    results: list[SubmittedEventSchema] = []
    for event, outcome in zip(blob_events, outcomes):
        if isinstance(outcome, BaseException):
            reason = classify_failure(outcome)
            logger.warning(
                "trigger.event.failed",
                extra={"event_id": event.id, "failure_reason": reason.value},
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "status": "error",
                    "failure_reason": reason.value,
                    "event_id": event.id,
                    "details": str(outcome),
                },
            )
        results.append(_submitted(event.id, outcome))

    return TriggerResponseSchema(status="submitted", results=results, skipped=skipped)


def _submitted(event_id: str, outcome: PipelineOutcome) -> SubmittedEventSchema:
    if outcome.staged is None or outcome.submitted is None:
        raise VidIngestError(f"Event {event_id} finished without a staged asset and job")
    return SubmittedEventSchema(
        event_id=event_id,
        asset_id=outcome.staged.asset.id,
        asset_name=outcome.staged.asset.name,
        asset_reused=outcome.staged.reused,
        job_id=outcome.submitted.job.id,
        job_reused=outcome.submitted.reused,
    )


health_router = APIRouter(tags=["health"])


@health_router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}
