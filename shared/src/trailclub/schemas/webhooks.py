"""Pydantic schemas for the webhook event ledger."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class WebhookEventStatus(str, Enum):
    """Processing status of a webhook event."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookEventRecord(BaseModel):
    """Read-only view of one ledger row."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    event_type: str
    status: WebhookEventStatus
    retry_count: int = 0
    claimed_at: datetime
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error_message: str | None = None


class WebhookCleanupRequest(BaseModel):
    older_than_days: int = 30
