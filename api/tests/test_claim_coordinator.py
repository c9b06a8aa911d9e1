"""Tests for webhook event claiming and its state machine."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from api.services.claim_coordinator import ClaimCoordinator
from fakes import NOW
from trailclub.config import ClaimPolicy
from trailclub.errors import DuplicateEventError, StorageError
from trailclub.schemas.webhooks import WebhookEventStatus


@pytest.mark.asyncio
async def test_first_claim_records_processing_row(coordinator, ledger):
    await coordinator.claim("evt_1", "checkout.session.completed")

    record = ledger.rows["evt_1"]
    assert record.status == WebhookEventStatus.PROCESSING
    assert record.retry_count == 0
    assert record.claimed_at == NOW


@pytest.mark.asyncio
async def test_concurrent_claims_have_exactly_one_winner(coordinator):
    results = await asyncio.gather(
        *(coordinator.claim("evt_race", "invoice.paid") for _ in range(10)),
        return_exceptions=True,
    )

    winners = [r for r in results if r is None]
    losers = [r for r in results if isinstance(r, DuplicateEventError)]
    assert len(winners) == 1
    assert len(losers) == 9


@pytest.mark.asyncio
async def test_completed_event_is_duplicate_with_completion_time(coordinator, clock):
    await coordinator.claim("evt_done", "invoice.paid")
    clock.advance(timedelta(seconds=3))
    await coordinator.complete("evt_done")
    completed_at = clock.now

    clock.advance(timedelta(days=2))
    with pytest.raises(DuplicateEventError) as exc_info:
        await coordinator.claim("evt_done", "invoice.paid")

    assert exc_info.value.event_id == "evt_done"
    assert exc_info.value.processed_at == completed_at


@pytest.mark.asyncio
async def test_fresh_processing_claim_is_duplicate(coordinator, clock):
    await coordinator.claim("evt_busy", "invoice.paid")
    clock.advance(timedelta(minutes=4, seconds=59))

    with pytest.raises(DuplicateEventError) as exc_info:
        await coordinator.claim("evt_busy", "invoice.paid")

    assert exc_info.value.processed_at == NOW


@pytest.mark.asyncio
async def test_claim_exactly_at_staleness_window_is_still_fresh(coordinator, clock):
    await coordinator.claim("evt_edge", "invoice.paid")
    clock.advance(timedelta(minutes=5))

    with pytest.raises(DuplicateEventError):
        await coordinator.claim("evt_edge", "invoice.paid")


@pytest.mark.asyncio
async def test_stale_processing_claim_is_reclaimed(coordinator, ledger, clock):
    await coordinator.claim("evt_stale", "invoice.paid")
    clock.advance(timedelta(minutes=6))

    await coordinator.claim("evt_stale", "invoice.paid")

    record = ledger.rows["evt_stale"]
    assert record.status == WebhookEventStatus.PROCESSING
    assert record.retry_count == 1
    assert record.claimed_at == clock.now


@pytest.mark.asyncio
async def test_failed_event_is_reclaimed_immediately(coordinator, ledger, clock):
    await coordinator.claim("evt_fail", "invoice.paid")
    await coordinator.fail("evt_fail", "boom")
    assert ledger.rows["evt_fail"].error_message == "boom"

    clock.advance(timedelta(seconds=1))
    await coordinator.claim("evt_fail", "invoice.paid")
    assert ledger.rows["evt_fail"].retry_count == 1

    await coordinator.fail("evt_fail", "boom again")
    await coordinator.claim("evt_fail", "invoice.paid")
    assert ledger.rows["evt_fail"].retry_count == 2


@pytest.mark.asyncio
async def test_concurrent_reclaims_of_failed_event_have_one_winner(coordinator, ledger):
    await coordinator.claim("evt_retry", "invoice.paid")
    await coordinator.fail("evt_retry", "transient")

    results = await asyncio.gather(
        *(coordinator.claim("evt_retry", "invoice.paid") for _ in range(5)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if r is None) == 1
    assert all(isinstance(r, DuplicateEventError) for r in results if r is not None)
    assert ledger.rows["evt_retry"].retry_count == 1


@pytest.mark.asyncio
async def test_custom_policy_shortens_staleness_window(ledger, clock):
    coordinator = ClaimCoordinator(
        ledger, ClaimPolicy(stale_after=timedelta(seconds=30)), clock=clock
    )
    await coordinator.claim("evt_short", "invoice.paid")
    clock.advance(timedelta(seconds=31))

    await coordinator.claim("evt_short", "invoice.paid")
    assert ledger.rows["evt_short"].retry_count == 1


@pytest.mark.asyncio
async def test_check_returns_record_or_none(coordinator):
    assert await coordinator.check("evt_missing") is None

    await coordinator.claim("evt_seen", "invoice.paid")
    record = await coordinator.check("evt_seen")
    assert record is not None
    assert record.event_type == "invoice.paid"


@pytest.mark.asyncio
async def test_cleanup_deletes_only_old_claims(coordinator, ledger, clock):
    await coordinator.claim("evt_old", "invoice.paid")
    clock.advance(timedelta(days=40))
    await coordinator.claim("evt_new", "invoice.paid")

    deleted = await coordinator.cleanup(30)

    assert deleted == 1
    assert set(ledger.rows) == {"evt_new"}


@pytest.mark.asyncio
async def test_cleanup_rejects_negative_age(coordinator):
    with pytest.raises(ValueError):
        await coordinator.cleanup(-1)


@pytest.mark.asyncio
async def test_storage_errors_propagate(coordinator, ledger):
    ledger.fail_with = StorageError("CLAIM_INSERT_FAILED", "db down")

    with pytest.raises(StorageError) as exc_info:
        await coordinator.claim("evt_x", "invoice.paid")

    assert exc_info.value.code == "CLAIM_INSERT_FAILED"
