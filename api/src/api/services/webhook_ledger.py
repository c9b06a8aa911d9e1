"""Postgres-backed ledger of webhook events.

Every primitive runs in its own short transaction so a claim is visible to
other replicas as soon as it returns. Conflict handling lives in the SQL
statements themselves: the insert is guarded by ``ON CONFLICT DO NOTHING`` and
a reclaim only matches rows that are still failed or stale.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from trailclub.errors import StorageError
from trailclub.models import WebhookEvent
from trailclub.schemas.webhooks import WebhookEventRecord, WebhookEventStatus

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(code: str, message: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(code, message) from exc


def build_claim_insert(event_id: str, event_type: str, now: datetime):
    return (
        pg_insert(WebhookEvent)
        .values(
            id=event_id,
            event_type=event_type,
            status=WebhookEventStatus.PROCESSING.value,
            retry_count=0,
            claimed_at=now,
        )
        .on_conflict_do_nothing(index_elements=[WebhookEvent.id])
        .returning(WebhookEvent.id)
    )


def build_reclaim_update(event_id: str, now: datetime, stale_before: datetime):
    return (
        update(WebhookEvent)
        .where(
            WebhookEvent.id == event_id,
            or_(
                WebhookEvent.status == WebhookEventStatus.FAILED.value,
                and_(
                    WebhookEvent.status == WebhookEventStatus.PROCESSING.value,
                    WebhookEvent.claimed_at < stale_before,
                ),
            ),
        )
        .values(
            status=WebhookEventStatus.PROCESSING.value,
            retry_count=WebhookEvent.retry_count + 1,
            claimed_at=now,
        )
        .returning(WebhookEvent.retry_count)
    )


class WebhookEventLedger:
    """Atomic read/insert/update primitives over the ``webhook_events`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert_if_absent(self, event_id: str, event_type: str, now: datetime) -> bool:
        """Insert a processing row; return False if the event ID already exists."""
        with _storage_errors("CLAIM_INSERT_FAILED", f"Failed to claim webhook event {event_id}"):
            async with self._session_factory.begin() as session:
                result = await session.execute(build_claim_insert(event_id, event_type, now))
                return result.scalar_one_or_none() is not None

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        with _storage_errors("CHECK_EVENT_FAILED", f"Failed to check webhook event {event_id}"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WebhookEvent).where(WebhookEvent.id == event_id)
                )
                row = result.scalars().first()
                return WebhookEventRecord.model_validate(row) if row is not None else None

    async def reclaim(
        self,
        event_id: str,
        *,
        now: datetime,
        stale_before: datetime,
    ) -> int | None:
        """Move a failed or stale row back to processing.

        Returns the new retry count, or None when another caller got there first
        (or the row is no longer eligible).
        """
        with _storage_errors("CLAIM_RECLAIM_FAILED", f"Failed to reclaim webhook event {event_id}"):
            async with self._session_factory.begin() as session:
                result = await session.execute(build_reclaim_update(event_id, now, stale_before))
                return result.scalar_one_or_none()

    async def mark_completed(self, event_id: str, now: datetime) -> None:
        with _storage_errors(
            "COMPLETE_EVENT_FAILED", f"Failed to complete webhook event {event_id}"
        ):
            async with self._session_factory.begin() as session:
                await session.execute(
                    update(WebhookEvent)
                    .where(WebhookEvent.id == event_id)
                    .values(status=WebhookEventStatus.COMPLETED.value, completed_at=now)
                )

    async def mark_failed(self, event_id: str, message: str, now: datetime) -> None:
        with _storage_errors(
            "FAIL_EVENT_FAILED", f"Failed to mark webhook event {event_id} as failed"
        ):
            async with self._session_factory.begin() as session:
                await session.execute(
                    update(WebhookEvent)
                    .where(WebhookEvent.id == event_id)
                    .values(
                        status=WebhookEventStatus.FAILED.value,
                        failed_at=now,
                        error_message=message,
                    )
                )

    async def delete_claimed_before(self, cutoff: datetime) -> int:
        with _storage_errors("CLEANUP_EVENTS_FAILED", "Failed to clean up old webhook events"):
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    delete(WebhookEvent).where(WebhookEvent.claimed_at < cutoff)
                )
                deleted = int(result.rowcount or 0)
        logger.info("Deleted %d webhook events claimed before %s", deleted, cutoff.isoformat())
        return deleted
