"""Admin Stripe reconciliation."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from trailclub.errors import MalformedUpstreamDataError, PaymentProviderError, StorageError
from trailclub.schemas.reconciliation import (
    ReconcileRequest,
    ReconciliationReport,
    ReconciliationResult,
)

from api.dependencies import AdminPrincipal, get_reconciliation_service, require_admin
from api.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)
router = APIRouter()


def _raise_for_core_error(exc: Exception) -> None:
    if isinstance(exc, StorageError):
        raise HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (MalformedUpstreamDataError, PaymentProviderError)):
        raise HTTPException(status_code=502, detail=str(exc))
    raise exc


@router.get("/", response_model=ReconciliationReport)
async def validate_member(
    email: str = Query(min_length=3),
    service: ReconciliationService = Depends(get_reconciliation_service),
    admin: AdminPrincipal = Depends(require_admin),
):
    try:
        return await service.build_report(email.strip())
    except (StorageError, MalformedUpstreamDataError, PaymentProviderError) as exc:
        logger.warning("Reconciliation report for %s failed: %s", email, exc)
        _raise_for_core_error(exc)


@router.post("/", response_model=ReconciliationResult)
async def reconcile_member(
    body: ReconcileRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
    admin: AdminPrincipal = Depends(require_admin),
):
    email = body.email.strip()
    if not email:
        raise HTTPException(status_code=400, detail="Email required")
    try:
        return await service.reconcile(email, admin.uid)
    except (StorageError, MalformedUpstreamDataError, PaymentProviderError) as exc:
        logger.error("Reconciliation for %s by %s failed: %s", email, admin.uid, exc)
        _raise_for_core_error(exc)
