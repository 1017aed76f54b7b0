"""Event delivery surface for the ingest pipeline."""

from .trigger_api import health_router, router
from .trigger_service import FailureReason, InvalidEventError, TriggerService

__all__ = ["FailureReason", "InvalidEventError", "TriggerService", "health_router", "router"]
