"""Pure comparison of Stripe and internal membership snapshots."""

from __future__ import annotations

from datetime import datetime, timedelta

from trailclub.schemas.reconciliation import (
    DiscrepancyType,
    InternalDataSnapshot,
    StripeDataSnapshot,
)

# Absorbs timezone/rounding differences between the two systems.
DATE_TOLERANCE = timedelta(days=1)


def dates_differ(left: datetime, right: datetime, tolerance: timedelta = DATE_TOLERANCE) -> bool:
    return abs(left - right) > tolerance


def detect_discrepancies(
    stripe_data: StripeDataSnapshot | None,
    internal_data: InternalDataSnapshot | None,
) -> list[DiscrepancyType]:
    if stripe_data is None:
        return [DiscrepancyType.NO_EXTERNAL_CUSTOMER]

    if internal_data is None:
        return [
            DiscrepancyType.MISSING_INTERNAL_USER,
            DiscrepancyType.MISSING_INTERNAL_MEMBERSHIP,
            DiscrepancyType.MISSING_INTERNAL_CARD,
        ]

    discrepancies: list[DiscrepancyType] = []
    membership = internal_data.membership
    card = internal_data.card

    if membership is None:
        discrepancies.append(DiscrepancyType.MISSING_INTERNAL_MEMBERSHIP)
    else:
        if membership.status != stripe_data.subscription_status:
            discrepancies.append(DiscrepancyType.STATUS_MISMATCH)
        if membership.plan_type != stripe_data.plan_type:
            discrepancies.append(DiscrepancyType.PLAN_MISMATCH)
        if dates_differ(membership.end_date, stripe_data.current_period_end):
            discrepancies.append(DiscrepancyType.DATE_MISMATCH)

    if card is None:
        discrepancies.append(DiscrepancyType.MISSING_INTERNAL_CARD)
    elif membership is not None:
        # Status and plan differences share one flag.
        if card.status != membership.status or card.plan_type != membership.plan_type:
            discrepancies.append(DiscrepancyType.CARD_STATUS_MISMATCH)
        if dates_differ(card.valid_until, membership.end_date):
            discrepancies.append(DiscrepancyType.CARD_DATES_MISMATCH)

    if not discrepancies:
        discrepancies.append(DiscrepancyType.NO_DISCREPANCY)
    return discrepancies
