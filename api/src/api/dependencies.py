"""FastAPI dependency injection."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from trailclub.config import Settings, get_settings
from trailclub.database import get_session_factory

from api.services.claim_coordinator import ClaimCoordinator
from api.services.member_store import MemberStore
from api.services.membership_events import MembershipEventHandler
from api.services.payment_client import StripePaymentClient
from api.services.reconciliation import ReconciliationService
from api.services.snapshot_builder import SnapshotBuilder
from api.services.webhook_ledger import WebhookEventLedger

ADMIN_AUTH_COOKIE_NAME = "trailclub_admin_token"


@dataclass(frozen=True)
class AdminPrincipal:
    uid: str
    email: str | None = None


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth[7:].strip()
        return token or None
    return None


def _extract_cookie_token(request: Request, cookie_name: str) -> str | None:
    cookie_token = request.cookies.get(cookie_name, "").strip()
    return cookie_token or None


def _decode_token(request: Request, settings: Settings) -> dict:
    raw_token = _extract_bearer_token(request) or _extract_cookie_token(
        request, ADMIN_AUTH_COOKIE_NAME
    )
    if not raw_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        payload = jwt.decode(raw_token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload


def require_admin(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> AdminPrincipal:
    """Admin claim on the token, plus the email whitelist when one is configured."""
    payload = _decode_token(request, settings)
    if payload.get("admin") is not True:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

    uid = str(payload.get("sub") or "").strip()
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    email = str(payload.get("email") or "").strip().lower() or None
    whitelist = settings.admin_whitelist()
    if whitelist and email not in whitelist:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin email not in authorized whitelist",
        )
    return AdminPrincipal(uid=uid, email=email)


def get_claim_coordinator(settings: Settings = Depends(get_settings)) -> ClaimCoordinator:
    ledger = WebhookEventLedger(get_session_factory())
    return ClaimCoordinator(ledger, settings.claim_policy())


def get_member_store(settings: Settings = Depends(get_settings)) -> MemberStore:
    return MemberStore(
        get_session_factory(),
        membership_number_prefix=settings.membership_number_prefix,
    )


def get_payment_client(settings: Settings = Depends(get_settings)) -> StripePaymentClient:
    try:
        return StripePaymentClient(settings.stripe_secret_key)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


def get_reconciliation_service(
    settings: Settings = Depends(get_settings),
    payments: StripePaymentClient = Depends(get_payment_client),
    store: MemberStore = Depends(get_member_store),
) -> ReconciliationService:
    snapshots = SnapshotBuilder(payments, store, settings.plan_catalog())
    return ReconciliationService(snapshots, store)


def get_membership_event_handler(
    settings: Settings = Depends(get_settings),
    payments: StripePaymentClient = Depends(get_payment_client),
    store: MemberStore = Depends(get_member_store),
) -> MembershipEventHandler:
    return MembershipEventHandler(payments, store, settings.plan_catalog())
