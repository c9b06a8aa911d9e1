"""Stripe vs. internal membership reconciliation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from trailclub.schemas.reconciliation import (
    DiscrepancyType,
    ReconciliationReport,
    ReconciliationResult,
)

from api.services.discrepancies import detect_discrepancies
from api.services.member_store import MemberStore
from api.services.reconcile_planner import plan_actions
from api.services.snapshot_builder import SnapshotBuilder

logger = logging.getLogger(__name__)

RECONCILIATION_AUDIT_ACTION = "RECONCILIATION"
NOT_RECONCILABLE_ERROR = "Cannot reconcile: No active Stripe subscription found"
ALREADY_ALIGNED_ERROR = "Nothing to reconcile: records already match Stripe"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReconciliationService:
    def __init__(
        self,
        snapshots: SnapshotBuilder,
        store: MemberStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._snapshots = snapshots
        self._store = store
        self._clock = clock

    async def build_report(self, email: str) -> ReconciliationReport:
        customer, stripe_data = await self._snapshots.stripe_snapshot(email)
        internal_data = await self._snapshots.internal_snapshot(
            email, customer_id=customer.id if customer is not None else None
        )

        if customer is not None and stripe_data is None:
            discrepancies = [DiscrepancyType.NO_EXTERNAL_SUBSCRIPTION]
        else:
            discrepancies = detect_discrepancies(stripe_data, internal_data)

        return ReconciliationReport(
            email=email,
            stripe_data=stripe_data,
            internal_data=internal_data,
            discrepancies=discrepancies,
            can_reconcile=(
                stripe_data is not None and DiscrepancyType.NO_DISCREPANCY not in discrepancies
            ),
            reconcile_actions=plan_actions(discrepancies, stripe_data, internal_data),
        )

    async def reconcile(self, email: str, actor_id: str) -> ReconciliationResult:
        """Bring internal records in line with Stripe for one member.

        The report is rebuilt here so the executed plan is never stale. Steps are
        not rolled back on failure; each is a create-or-update, so re-running
        converges.
        """
        report = await self.build_report(email)
        stripe_data = report.stripe_data
        if not report.can_reconcile or stripe_data is None:
            aligned = DiscrepancyType.NO_DISCREPANCY in report.discrepancies
            return ReconciliationResult(
                success=False,
                email=email,
                error=ALREADY_ALIGNED_ERROR if aligned else NOT_RECONCILABLE_ERROR,
            )

        internal_data = report.internal_data
        actions_performed: list[str] = []
        result = ReconciliationResult(success=False, email=email)

        # 1. user
        if internal_data is None:
            user, created = await self._store.upsert_user(
                stripe_data.customer_id, stripe_data.customer_email
            )
            user_id = user.id
            member_name = user.name or user.email
            member_email = user.email
            existing_membership_id = None
            existing_number = None
            if created:
                result.user_created = True
                actions_performed.append(f"Created user: {user_id}")
            else:
                actions_performed.append(f"Linked existing user: {user_id}")
                # A linked user may already hold a membership and card.
                membership = await self._store.get_active_membership(user_id)
                card = await self._store.get_membership_card(user_id)
                if membership is not None:
                    existing_membership_id = membership.id
                if card is not None:
                    existing_number = card.membership_number
        else:
            user_id = internal_data.user_id
            member_name = internal_data.user_name or internal_data.user_email
            member_email = internal_data.user_email
            membership_snapshot = internal_data.membership
            existing_membership_id = membership_snapshot.id if membership_snapshot else None
            existing_number = internal_data.card.membership_number if internal_data.card else None

        # 2. membership
        membership_id = await self._store.upsert_membership(
            user_id, stripe_data, membership_id=existing_membership_id
        )
        result.membership_updated = True
        if existing_membership_id is None:
            actions_performed.append(f"Created membership: {stripe_data.subscription_id}")
        else:
            actions_performed.append(f"Updated membership: {stripe_data.subscription_id}")

        # 3. card
        if existing_number is None:
            membership_number = await self._store.next_membership_number(self._clock().year)
        else:
            membership_number = existing_number
        membership_number = await self._store.upsert_card(
            user_id=user_id,
            membership_id=membership_id,
            membership_number=membership_number,
            member_name=member_name,
            email=member_email,
            snapshot=stripe_data,
        )
        result.membership_number = membership_number
        if existing_number is None:
            result.card_created = True
            actions_performed.append(f"Created membership card {membership_number}")
        else:
            result.card_updated = True
            actions_performed.append(f"Updated membership card {membership_number} (number preserved)")

        # 4. audit
        await self._store.append_audit_entry(
            user_id,
            RECONCILIATION_AUDIT_ACTION,
            actor_id,
            {
                "stripe_subscription_id": stripe_data.subscription_id,
                "discrepancies_fixed": [d.value for d in report.discrepancies],
                "actions_performed": actions_performed,
            },
        )

        logger.info(
            "Reconciled %s by %s: %s",
            email,
            actor_id,
            ", ".join(d.value for d in report.discrepancies),
        )
        result.success = True
        result.actions_performed = actions_performed
        return result
