"""Stripe webhook handler."""

from __future__ import annotations

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from trailclub.config import Settings, get_settings
from trailclub.errors import (
    DuplicateEventError,
    MalformedUpstreamDataError,
    PaymentProviderError,
    StorageError,
)

from api.dependencies import get_claim_coordinator, get_membership_event_handler
from api.services.claim_coordinator import ClaimCoordinator
from api.services.membership_events import MembershipEventHandler
from api.services.payment_client import verify_webhook_signature

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    coordinator: ClaimCoordinator = Depends(get_claim_coordinator),
    handler: MembershipEventHandler = Depends(get_membership_event_handler),
):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        event = verify_webhook_signature(payload, sig_header, settings.stripe_webhook_secret)
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    event_id = str(event.get("id", "")).strip()
    if not event_id:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event_type = str(event.get("type", "")).strip()
    if not event_type:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event_data = event.get("data")
    if not isinstance(event_data, dict) or not isinstance(event_data.get("object"), dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    data = event_data["object"]

    try:
        await coordinator.claim(event_id, event_type)
    except DuplicateEventError:
        logger.info("Stripe duplicate webhook ignored: %s", event_id)
        return {"status": "duplicate_ignored"}
    except StorageError as exc:
        logger.error("Could not claim webhook %s: %s", event_id, exc)
        raise HTTPException(status_code=503, detail="Webhook ledger unavailable")

    logger.info("Stripe webhook: %s (%s)", event_type, event_id)
    try:
        outcome = await handler.dispatch(event_type, data)
    except Exception as exc:
        logger.exception("Stripe webhook %s failed", event_id)
        await coordinator.fail(event_id, str(exc) or exc.__class__.__name__)
        if isinstance(exc, StorageError):
            raise HTTPException(status_code=503, detail="Storage unavailable")
        if isinstance(exc, (MalformedUpstreamDataError, PaymentProviderError)):
            raise HTTPException(status_code=502, detail=str(exc))
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    await coordinator.complete(event_id)
    return {"status": "ok", "outcome": outcome}
