"""Stripe SDK wrapper for customer and subscription lookups."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import stripe

from trailclub.errors import PaymentProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalCustomer:
    id: str
    email: str | None = None


@dataclass(frozen=True)
class ExternalSubscription:
    id: str
    customer_id: str
    status: str
    price_id: str
    period_start: datetime | None
    period_end: datetime | None
    cancel_at_period_end: bool = False


def _as_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OSError):
        return None


def subscription_from_stripe(payload: dict[str, Any]) -> ExternalSubscription:
    """Normalize a Stripe subscription object.

    Newer API versions carry the billing period on the subscription item rather
    than on the subscription, so both places are consulted.
    """
    items = (payload.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price_id = (first_item.get("price") or {}).get("id") or ""
    period_start = payload.get("current_period_start") or first_item.get("current_period_start")
    period_end = payload.get("current_period_end") or first_item.get("current_period_end")
    customer = payload.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return ExternalSubscription(
        id=str(payload.get("id") or ""),
        customer_id=str(customer or ""),
        status=str(payload.get("status") or ""),
        price_id=str(price_id),
        period_start=_as_datetime(period_start),
        period_end=_as_datetime(period_end),
        cancel_at_period_end=bool(payload.get("cancel_at_period_end", False)),
    )


def verify_webhook_signature(payload: bytes, sig_header: str, webhook_secret: str) -> dict:
    """Verify Stripe webhook signature and return the event as a plain dict."""
    if not webhook_secret:
        raise RuntimeError("Stripe webhook secret is not configured")
    event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    return event.to_dict()


class StripePaymentClient:
    """Read-only view of Stripe customers and subscriptions.

    The SDK is synchronous, so calls run in a worker thread. The API key is
    passed per request instead of being set on the module.
    """

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise RuntimeError("Stripe is not configured")
        self._api_key = api_key

    async def _call(self, code: str, func, /, **params: Any) -> dict[str, Any]:
        """Run an SDK call and return its result converted to plain dicts and lists."""
        try:
            result = await asyncio.to_thread(func, api_key=self._api_key, **params)
        except stripe.StripeError as exc:
            logger.warning("Stripe call %s failed: %s", code, exc)
            raise PaymentProviderError(code, str(exc) or exc.__class__.__name__) from exc
        return result.to_dict()

    async def get_customer_by_email(self, email: str) -> ExternalCustomer | None:
        customers = await self._call(
            "CUSTOMER_LOOKUP_FAILED", stripe.Customer.list, email=email, limit=1
        )
        data = list(customers.get("data", []))
        if not data:
            return None
        customer = data[0]
        return ExternalCustomer(id=str(customer["id"]), email=customer.get("email"))

    async def list_subscriptions(self, customer_id: str) -> list[ExternalSubscription]:
        subscriptions = await self._call(
            "SUBSCRIPTION_LIST_FAILED",
            stripe.Subscription.list,
            customer=customer_id,
            status="all",
            limit=100,
        )
        return [subscription_from_stripe(sub) for sub in subscriptions.get("data", [])]

    async def retrieve_subscription(self, subscription_id: str) -> ExternalSubscription:
        subscription = await self._call(
            "SUBSCRIPTION_RETRIEVE_FAILED", stripe.Subscription.retrieve, id=subscription_id
        )
        return subscription_from_stripe(subscription)
