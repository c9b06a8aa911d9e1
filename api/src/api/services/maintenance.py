"""Background maintenance loop (webhook ledger retention cleanup)."""

from __future__ import annotations

import asyncio
import logging

from trailclub.config import get_settings

from api.services.claim_coordinator import ClaimCoordinator

logger = logging.getLogger(__name__)


async def run_webhook_retention_cleanup(coordinator: ClaimCoordinator) -> int:
    settings = get_settings()
    retention_days = max(1, int(settings.webhook_retention_days))
    deleted = await coordinator.cleanup(retention_days)
    logger.info("Webhook retention cleanup removed %d events (>%d days)", deleted, retention_days)
    return deleted


async def run_maintenance_worker(
    stop_event: asyncio.Event,
    coordinator: ClaimCoordinator,
    *,
    poll_interval_seconds: float | None = None,
) -> None:
    settings = get_settings()
    interval = poll_interval_seconds or float(settings.maintenance_interval_seconds)

    logger.info("Maintenance worker started")
    try:
        while not stop_event.is_set():
            try:
                await run_webhook_retention_cleanup(coordinator)
            except Exception:
                logger.exception("Scheduled webhook retention cleanup failed")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except TimeoutError:
                pass
    finally:
        logger.info("Maintenance worker stopped")
