"""Human-readable action plans for reconciliation reports."""

from __future__ import annotations

from trailclub.schemas.reconciliation import (
    DiscrepancyType,
    InternalDataSnapshot,
    StripeDataSnapshot,
)

NO_ACTION_POSSIBLE = "No action possible - no Stripe subscription found"
CARD_UPDATE_ACTION = "Update card to match membership (preserve membership number)"


def plan_actions(
    discrepancies: list[DiscrepancyType],
    stripe_data: StripeDataSnapshot | None,
    internal_data: InternalDataSnapshot | None,
) -> list[str]:
    """Describe one action per discrepancy, in the order they were detected."""
    if stripe_data is None:
        return [NO_ACTION_POSSIBLE]

    membership = internal_data.membership if internal_data else None
    actions: list[str] = []

    for discrepancy in discrepancies:
        if discrepancy == DiscrepancyType.MISSING_INTERNAL_USER:
            actions.append(f"Create internal user linked to Stripe customer {stripe_data.customer_id}")
        elif discrepancy == DiscrepancyType.MISSING_INTERNAL_MEMBERSHIP:
            actions.append(
                f"Create membership record with status: {stripe_data.subscription_status}"
            )
        elif discrepancy == DiscrepancyType.STATUS_MISMATCH:
            previous = membership.status if membership else None
            actions.append(
                f"Update membership status: {previous} → {stripe_data.subscription_status}"
            )
        elif discrepancy == DiscrepancyType.PLAN_MISMATCH:
            previous = membership.plan_type if membership else None
            actions.append(f"Update membership plan type: {previous} → {stripe_data.plan_type}")
        elif discrepancy == DiscrepancyType.DATE_MISMATCH:
            actions.append(
                "Update membership end date to: "
                f"{stripe_data.current_period_end.date().isoformat()}"
            )
        elif discrepancy == DiscrepancyType.MISSING_INTERNAL_CARD:
            actions.append("Issue new membership card")
        elif discrepancy in (
            DiscrepancyType.CARD_STATUS_MISMATCH,
            DiscrepancyType.CARD_DATES_MISMATCH,
        ):
            if CARD_UPDATE_ACTION not in actions:
                actions.append(CARD_UPDATE_ACTION)
        elif discrepancy in (
            DiscrepancyType.NO_EXTERNAL_CUSTOMER,
            DiscrepancyType.NO_EXTERNAL_SUBSCRIPTION,
        ):
            return [NO_ACTION_POSSIBLE]

    return actions
