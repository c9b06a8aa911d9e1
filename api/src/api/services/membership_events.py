"""Membership side effects for Stripe webhook events."""

from __future__ import annotations

import logging
from typing import Any

from trailclub.config import PlanCatalog

from api.services.member_store import MemberStore
from api.services.payment_client import (
    ExternalCustomer,
    StripePaymentClient,
    subscription_from_stripe,
)
from api.services.snapshot_builder import build_stripe_snapshot

logger = logging.getLogger(__name__)

SUBSCRIPTION_UPSERT_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
)


class MembershipEventHandler:
    def __init__(
        self,
        payments: StripePaymentClient,
        store: MemberStore,
        catalog: PlanCatalog,
    ) -> None:
        self._payments = payments
        self._store = store
        self._catalog = catalog

    async def dispatch(self, event_type: str, data: dict[str, Any]) -> str:
        """Apply the event and return a short outcome label."""
        if event_type == "checkout.session.completed":
            return await self.checkout_completed(data)
        if event_type in SUBSCRIPTION_UPSERT_EVENTS:
            return await self.subscription_updated(data)
        if event_type == "customer.subscription.deleted":
            return await self.subscription_deleted(data)
        logger.info("Unhandled Stripe event type: %s", event_type)
        return "ignored"

    async def checkout_completed(self, session: dict[str, Any]) -> str:
        customer_id = str(session.get("customer") or "").strip()
        subscription_id = str(session.get("subscription") or "").strip()
        customer_details = session.get("customer_details") or {}
        email = str(session.get("customer_email") or customer_details.get("email") or "").strip()
        if not (customer_id and subscription_id and email):
            logger.warning(
                "checkout.session.completed %s missing customer, subscription or email",
                session.get("id"),
            )
            return "ignored"

        subscription = await self._payments.retrieve_subscription(subscription_id)
        snapshot = build_stripe_snapshot(
            ExternalCustomer(id=customer_id, email=email), subscription, self._catalog
        )
        user, _ = await self._store.upsert_user(
            customer_id, email, name=customer_details.get("name")
        )
        await self._store.upsert_membership(user.id, snapshot)
        logger.info(
            "Membership %s recorded for user %s, plan %s",
            subscription_id,
            user.id,
            snapshot.plan_type,
        )
        return "membership_created"

    async def subscription_updated(self, payload: dict[str, Any]) -> str:
        subscription = subscription_from_stripe(payload)
        user = await self._store.get_user_by_stripe_customer(subscription.customer_id)
        if user is None:
            logger.warning("No user found for Stripe customer %s", subscription.customer_id)
            return "ignored"

        snapshot = build_stripe_snapshot(
            ExternalCustomer(id=subscription.customer_id, email=user.email),
            subscription,
            self._catalog,
        )
        await self._store.upsert_membership(user.id, snapshot)
        logger.info("Membership updated: %s -> %s", subscription.id, subscription.status)
        return "membership_updated"

    async def subscription_deleted(self, payload: dict[str, Any]) -> str:
        subscription_id = str(payload.get("id") or "").strip()
        if not subscription_id or not await self._store.cancel_membership(subscription_id):
            logger.warning("No membership found for deleted subscription %s", subscription_id)
            return "ignored"
        logger.info("Membership canceled: %s", subscription_id)
        return "membership_canceled"
