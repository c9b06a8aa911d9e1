"""Storage reader/writer for users, memberships, cards and the audit log.

Each method runs in its own transaction. Writes are create-or-update so that
reconciliation and webhook handlers can be re-run safely.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from trailclub.errors import StorageError
from trailclub.models import AuditLog, Membership, MembershipCard, MembershipCounter, User
from trailclub.models.membership import ACTIVE_MEMBERSHIP_STATUSES
from trailclub.schemas.reconciliation import StripeDataSnapshot

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(code: str, message: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(code, message) from exc


def format_membership_number(prefix: str, year: int, number: int) -> str:
    return f"{prefix}-{year}-{number:06d}"


def build_counter_increment(year: int, now: datetime):
    return (
        pg_insert(MembershipCounter)
        .values(year=year, last_number=1, updated_at=now)
        .on_conflict_do_update(
            index_elements=[MembershipCounter.year],
            set_={"last_number": MembershipCounter.last_number + 1, "updated_at": now},
        )
        .returning(MembershipCounter.last_number)
    )


def build_card_upsert(
    *,
    user_id: uuid.UUID,
    membership_id: uuid.UUID,
    membership_number: str,
    member_name: str,
    email: str,
    plan_type: str,
    status: str,
    valid_from: datetime,
    valid_until: datetime,
    now: datetime,
):
    """Insert a card, or refresh the user's existing one keeping its number."""
    stmt = pg_insert(MembershipCard).values(
        user_id=user_id,
        membership_id=membership_id,
        membership_number=membership_number,
        member_name=member_name,
        email=email,
        plan_type=plan_type,
        status=status,
        valid_from=valid_from,
        valid_until=valid_until,
        created_at=now,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=[MembershipCard.user_id],
        set_={
            "membership_id": stmt.excluded.membership_id,
            "member_name": stmt.excluded.member_name,
            "email": stmt.excluded.email,
            "plan_type": stmt.excluded.plan_type,
            "status": stmt.excluded.status,
            "valid_from": stmt.excluded.valid_from,
            "valid_until": stmt.excluded.valid_until,
            "updated_at": now,
        },
    ).returning(MembershipCard.membership_number)


def _membership_values(snapshot: StripeDataSnapshot, now: datetime) -> dict[str, Any]:
    return {
        "stripe_subscription_id": snapshot.subscription_id,
        "plan_type": snapshot.plan_type,
        "status": snapshot.subscription_status,
        "start_date": snapshot.current_period_start,
        "end_date": snapshot.current_period_end,
        "auto_renew": not snapshot.cancel_at_period_end,
        "updated_at": now,
    }


class MemberStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        membership_number_prefix: str = "DEC",
    ) -> None:
        self._session_factory = session_factory
        self._prefix = membership_number_prefix

    # -- reads ---------------------------------------------------------------

    async def get_user_by_email(self, email: str) -> User | None:
        with _storage_errors("GET_USER_BY_EMAIL_FAILED", f"Failed to get user by email {email}"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User).where(func.lower(User.email) == email.strip().lower()).limit(1)
                )
                return result.scalars().first()

    async def get_user_by_stripe_customer(self, customer_id: str) -> User | None:
        with _storage_errors(
            "GET_USER_BY_CUSTOMER_FAILED", f"Failed to get user for customer {customer_id}"
        ):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User).where(User.stripe_customer_id == customer_id).limit(1)
                )
                return result.scalars().first()

    async def get_active_membership(self, user_id: uuid.UUID) -> Membership | None:
        with _storage_errors(
            "GET_ACTIVE_MEMBERSHIP_FAILED", f"Failed to get active membership for user {user_id}"
        ):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Membership)
                    .where(
                        Membership.user_id == user_id,
                        Membership.status.in_(ACTIVE_MEMBERSHIP_STATUSES),
                    )
                    .order_by(Membership.end_date.desc())
                    .limit(1)
                )
                return result.scalars().first()

    async def get_membership_card(self, user_id: uuid.UUID) -> MembershipCard | None:
        with _storage_errors("GET_CARD_FAILED", f"Failed to get membership card for user {user_id}"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(MembershipCard).where(MembershipCard.user_id == user_id).limit(1)
                )
                return result.scalars().first()

    # -- writes --------------------------------------------------------------

    async def upsert_user(
        self,
        stripe_customer_id: str,
        email: str,
        *,
        name: str | None = None,
    ) -> tuple[User, bool]:
        """Find the user by Stripe customer or email, creating one if needed.

        Returns the user and whether it was created.
        """
        now = datetime.now(UTC)
        normalized_email = email.strip().lower()
        with _storage_errors("UPSERT_USER_FAILED", f"Failed to upsert user {normalized_email}"):
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    select(User)
                    .where(User.stripe_customer_id == stripe_customer_id)
                    .limit(1)
                )
                user = result.scalars().first()
                if user is None:
                    result = await session.execute(
                        select(User).where(func.lower(User.email) == normalized_email).limit(1)
                    )
                    user = result.scalars().first()

                if user is not None:
                    if user.stripe_customer_id != stripe_customer_id:
                        user.stripe_customer_id = stripe_customer_id
                        user.updated_at = now
                    return user, False

                stmt = pg_insert(User).values(
                    email=normalized_email,
                    name=name,
                    stripe_customer_id=stripe_customer_id,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[User.email],
                    set_={"stripe_customer_id": stripe_customer_id, "updated_at": now},
                ).returning(User)
                result = await session.execute(stmt)
                user = result.scalars().one()
                logger.info("Created user %s for Stripe customer %s", user.id, stripe_customer_id)
                return user, True

    async def upsert_membership(
        self,
        user_id: uuid.UUID,
        snapshot: StripeDataSnapshot,
        *,
        membership_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        """Write the membership from a Stripe snapshot and return its ID.

        With ``membership_id`` the given row is updated in place; otherwise the
        row is keyed by the Stripe subscription ID.
        """
        now = datetime.now(UTC)
        values = _membership_values(snapshot, now)
        with _storage_errors(
            "UPSERT_MEMBERSHIP_FAILED",
            f"Failed to upsert membership {snapshot.subscription_id} for user {user_id}",
        ):
            async with self._session_factory.begin() as session:
                if membership_id is not None:
                    result = await session.execute(
                        update(Membership)
                        .where(Membership.id == membership_id)
                        .values(**values)
                        .returning(Membership.id)
                    )
                    updated = result.scalar_one_or_none()
                    if updated is not None:
                        return updated

                stmt = pg_insert(Membership).values(user_id=user_id, created_at=now, **values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Membership.stripe_subscription_id],
                    set_={"user_id": user_id, **values},
                ).returning(Membership.id)
                result = await session.execute(stmt)
                return result.scalar_one()

    async def cancel_membership(self, stripe_subscription_id: str) -> bool:
        now = datetime.now(UTC)
        with _storage_errors(
            "CANCEL_MEMBERSHIP_FAILED", f"Failed to cancel membership {stripe_subscription_id}"
        ):
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    update(Membership)
                    .where(Membership.stripe_subscription_id == stripe_subscription_id)
                    .values(status="canceled", auto_renew=False, updated_at=now)
                    .returning(Membership.id)
                )
                return result.scalar_one_or_none() is not None

    async def next_membership_number(self, year: int) -> str:
        with _storage_errors("COUNTER_INCREMENT_FAILED", "Failed to get next membership number"):
            async with self._session_factory.begin() as session:
                result = await session.execute(build_counter_increment(year, datetime.now(UTC)))
                return format_membership_number(self._prefix, year, int(result.scalar_one()))

    async def upsert_card(
        self,
        *,
        user_id: uuid.UUID,
        membership_id: uuid.UUID,
        membership_number: str,
        member_name: str,
        email: str,
        snapshot: StripeDataSnapshot,
    ) -> str:
        """Write the user's card and return the membership number it carries."""
        with _storage_errors("SET_CARD_FAILED", f"Failed to set membership card for user {user_id}"):
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    build_card_upsert(
                        user_id=user_id,
                        membership_id=membership_id,
                        membership_number=membership_number,
                        member_name=member_name,
                        email=email,
                        plan_type=snapshot.plan_type,
                        status=snapshot.subscription_status,
                        valid_from=snapshot.current_period_start,
                        valid_until=snapshot.current_period_end,
                        now=datetime.now(UTC),
                    )
                )
                return result.scalar_one()

    async def append_audit_entry(
        self,
        user_id: uuid.UUID | None,
        action: str,
        performed_by: str,
        detail: dict[str, Any],
    ) -> None:
        with _storage_errors("AUDIT_LOG_FAILED", f"Failed to write audit entry {action}"):
            async with self._session_factory.begin() as session:
                session.add(
                    AuditLog(
                        user_id=user_id,
                        action=action,
                        performed_by=performed_by,
                        detail=detail,
                    )
                )
