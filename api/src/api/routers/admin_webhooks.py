"""Admin view of the webhook event ledger."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from trailclub.schemas.webhooks import WebhookCleanupRequest, WebhookEventRecord

from api.dependencies import AdminPrincipal, get_claim_coordinator, require_admin
from api.services.claim_coordinator import ClaimCoordinator

router = APIRouter()


@router.get("/{event_id}", response_model=WebhookEventRecord)
async def get_webhook_event(
    event_id: str,
    coordinator: ClaimCoordinator = Depends(get_claim_coordinator),
    admin: AdminPrincipal = Depends(require_admin),
):
    record = await coordinator.check(event_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Webhook event not found")
    return record


@router.post("/cleanup")
async def cleanup_webhook_events(
    body: WebhookCleanupRequest,
    coordinator: ClaimCoordinator = Depends(get_claim_coordinator),
    admin: AdminPrincipal = Depends(require_admin),
):
    if body.older_than_days < 1:
        raise HTTPException(status_code=400, detail="older_than_days must be at least 1")
    deleted = await coordinator.cleanup(body.older_than_days)
    return {"status": "ok", "deleted": deleted, "older_than_days": body.older_than_days}
