"""Idempotent claiming of webhook events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from trailclub.config import ClaimPolicy
from trailclub.errors import DuplicateEventError
from trailclub.schemas.webhooks import WebhookEventRecord, WebhookEventStatus

from api.services.webhook_ledger import WebhookEventLedger

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ClaimCoordinator:
    """Decides whether a webhook event may be processed.

    State machine per event ID:

    * absent -> processing (conditional insert; losing the race is a duplicate)
    * completed -> rejected as duplicate
    * failed -> processing, retry count + 1
    * processing, claimed within the staleness window -> rejected as duplicate
    * processing, claimed before the window -> reclaimed, retry count + 1
    """

    def __init__(
        self,
        ledger: WebhookEventLedger,
        policy: ClaimPolicy | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ledger = ledger
        self._policy = policy or ClaimPolicy()
        self._clock = clock

    async def claim(self, event_id: str, event_type: str) -> None:
        now = self._clock()
        if await self._ledger.insert_if_absent(event_id, event_type, now):
            logger.info("Claimed webhook event %s (%s)", event_id, event_type)
            return

        existing = await self._ledger.get(event_id)
        if existing is None:
            # Row vanished between the conflicting insert and the read.
            raise DuplicateEventError(event_id)

        if existing.status == WebhookEventStatus.COMPLETED:
            raise DuplicateEventError(event_id, existing.completed_at)

        stale_before = now - self._policy.stale_after
        if existing.status == WebhookEventStatus.PROCESSING and existing.claimed_at >= stale_before:
            raise DuplicateEventError(event_id, existing.claimed_at)

        retry_count = await self._ledger.reclaim(event_id, now=now, stale_before=stale_before)
        if retry_count is None:
            raise DuplicateEventError(event_id, existing.claimed_at)

        logger.info(
            "Reclaimed webhook event %s from %s (retry %d)",
            event_id,
            existing.status.value,
            retry_count,
        )

    async def complete(self, event_id: str) -> None:
        await self._ledger.mark_completed(event_id, self._clock())

    async def fail(self, event_id: str, message: str) -> None:
        logger.warning("Webhook event %s failed: %s", event_id, message)
        await self._ledger.mark_failed(event_id, message, self._clock())

    async def check(self, event_id: str) -> WebhookEventRecord | None:
        return await self._ledger.get(event_id)

    async def cleanup(self, older_than_days: int) -> int:
        if older_than_days < 0:
            raise ValueError("older_than_days must be non-negative")
        cutoff = self._clock() - timedelta(days=older_than_days)
        return await self._ledger.delete_claimed_before(cutoff)
