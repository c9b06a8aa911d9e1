"""Builds point-in-time views of a member's billing state from Stripe and our DB."""

from __future__ import annotations

import logging

from trailclub.config import PlanCatalog
from trailclub.errors import MalformedUpstreamDataError
from trailclub.models import Membership, MembershipCard, User
from trailclub.schemas.reconciliation import (
    CardSnapshot,
    InternalDataSnapshot,
    MembershipSnapshot,
    StripeDataSnapshot,
)

from api.services.member_store import MemberStore
from api.services.payment_client import (
    ExternalCustomer,
    ExternalSubscription,
    StripePaymentClient,
)

logger = logging.getLogger(__name__)

PREFERRED_SUBSCRIPTION_STATUSES = ("active", "past_due")


def select_subscription(
    subscriptions: list[ExternalSubscription],
) -> ExternalSubscription | None:
    """First active/past_due subscription, else the first one listed."""
    for subscription in subscriptions:
        if subscription.status in PREFERRED_SUBSCRIPTION_STATUSES:
            return subscription
    return subscriptions[0] if subscriptions else None


def build_stripe_snapshot(
    customer: ExternalCustomer,
    subscription: ExternalSubscription,
    catalog: PlanCatalog,
    *,
    fallback_email: str = "",
) -> StripeDataSnapshot:
    if subscription.period_start is None or subscription.period_end is None:
        raise MalformedUpstreamDataError(
            "subscription", subscription.id, "missing current period dates"
        )
    return StripeDataSnapshot(
        customer_id=customer.id,
        customer_email=customer.email or fallback_email,
        subscription_id=subscription.id,
        subscription_status=subscription.status,
        price_id=subscription.price_id,
        plan_type=catalog.resolve(subscription.price_id),
        current_period_start=subscription.period_start,
        current_period_end=subscription.period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
    )


def build_internal_snapshot(
    user: User,
    membership: Membership | None,
    card: MembershipCard | None,
) -> InternalDataSnapshot:
    return InternalDataSnapshot(
        user_id=user.id,
        user_email=user.email,
        user_name=user.name,
        membership=(
            MembershipSnapshot(
                id=membership.id,
                subscription_id=membership.stripe_subscription_id,
                status=membership.status,
                plan_type=membership.plan_type,
                start_date=membership.start_date,
                end_date=membership.end_date,
                auto_renew=membership.auto_renew,
            )
            if membership is not None
            else None
        ),
        card=(
            CardSnapshot(
                membership_number=card.membership_number,
                status=card.status,
                plan_type=card.plan_type,
                valid_from=card.valid_from,
                valid_until=card.valid_until,
            )
            if card is not None
            else None
        ),
    )


class SnapshotBuilder:
    def __init__(
        self,
        payments: StripePaymentClient,
        store: MemberStore,
        catalog: PlanCatalog,
    ) -> None:
        self._payments = payments
        self._store = store
        self._catalog = catalog

    async def stripe_snapshot(
        self, email: str
    ) -> tuple[ExternalCustomer | None, StripeDataSnapshot | None]:
        """Return the Stripe customer (if any) and the snapshot of its chosen subscription."""
        customer = await self._payments.get_customer_by_email(email)
        if customer is None:
            return None, None

        subscriptions = await self._payments.list_subscriptions(customer.id)
        subscription = select_subscription(subscriptions)
        if subscription is None:
            logger.info("Stripe customer %s has no subscriptions", customer.id)
            return customer, None
        if len(subscriptions) > 1:
            logger.info(
                "Stripe customer %s has %d subscriptions; using %s",
                customer.id,
                len(subscriptions),
                subscription.id,
            )
        return customer, build_stripe_snapshot(
            customer, subscription, self._catalog, fallback_email=email
        )

    async def internal_snapshot(
        self, email: str, *, customer_id: str | None = None
    ) -> InternalDataSnapshot | None:
        """Find the member by email, falling back to the linked Stripe customer."""
        user = await self._store.get_user_by_email(email)
        if user is None and customer_id:
            user = await self._store.get_user_by_stripe_customer(customer_id)
        if user is None:
            return None
        membership = await self._store.get_active_membership(user.id)
        card = await self._store.get_membership_card(user.id)
        return build_internal_snapshot(user, membership, card)
