"""Pydantic schemas for blob-created event deliveries."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SUBSCRIPTION_VALIDATION_EVENT = "Microsoft.EventGrid.SubscriptionValidationEvent"
BLOB_CREATED_EVENT = "Microsoft.Storage.BlobCreated"


class EventGridEvent(BaseModel):
    """Single event in an Event Grid delivery batch."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    event_type: str = Field(..., alias="eventType")
    subject: str = ""
    event_time: datetime | None = Field(default=None, alias="eventTime")
    data: dict[str, Any] = Field(default_factory=dict)
    data_version: str | None = Field(default=None, alias="dataVersion")

    @property
    def blob_url(self) -> str | None:
        return self.data.get("url")

    @property
    def validation_code(self) -> str | None:
        return self.data.get("validationCode")


class SubmittedEventSchema(BaseModel):
    event_id: str
    asset_id: str
    asset_name: str
    asset_reused: bool = False
    job_id: str
    job_reused: bool = False


class TriggerResponseSchema(BaseModel):
    status: str
    results: list[SubmittedEventSchema] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


class TriggerErrorSchema(BaseModel):
    status: str
    failure_reason: str
    event_id: str | None = None
    details: str | None = None
