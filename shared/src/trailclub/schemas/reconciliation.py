"""Pydantic schemas for Stripe vs. internal membership reconciliation."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DiscrepancyType(str, Enum):
    """One category of divergence between Stripe and internal records."""

    NO_EXTERNAL_CUSTOMER = "NO_EXTERNAL_CUSTOMER"
    NO_EXTERNAL_SUBSCRIPTION = "NO_EXTERNAL_SUBSCRIPTION"
    MISSING_INTERNAL_USER = "MISSING_INTERNAL_USER"
    MISSING_INTERNAL_MEMBERSHIP = "MISSING_INTERNAL_MEMBERSHIP"
    MISSING_INTERNAL_CARD = "MISSING_INTERNAL_CARD"
    STATUS_MISMATCH = "STATUS_MISMATCH"
    DATE_MISMATCH = "DATE_MISMATCH"
    PLAN_MISMATCH = "PLAN_MISMATCH"
    CARD_STATUS_MISMATCH = "CARD_STATUS_MISMATCH"
    CARD_DATES_MISMATCH = "CARD_DATES_MISMATCH"
    NO_DISCREPANCY = "NO_DISCREPANCY"


class StripeDataSnapshot(BaseModel):
    """Billing state according to Stripe."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    customer_email: str
    subscription_id: str
    subscription_status: str
    price_id: str
    plan_type: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False


class MembershipSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    subscription_id: str | None
    status: str
    plan_type: str
    start_date: datetime
    end_date: datetime
    auto_renew: bool


class CardSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    membership_number: str
    status: str
    plan_type: str
    valid_from: datetime
    valid_until: datetime


class InternalDataSnapshot(BaseModel):
    """Billing state according to our own tables."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    user_email: str
    user_name: str | None = None
    membership: MembershipSnapshot | None = None
    card: CardSnapshot | None = None


class ReconciliationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    stripe_data: StripeDataSnapshot | None
    internal_data: InternalDataSnapshot | None
    discrepancies: list[DiscrepancyType]
    can_reconcile: bool
    reconcile_actions: list[str] = Field(default_factory=list)


class ReconciliationResult(BaseModel):
    success: bool
    email: str
    actions_performed: list[str] = Field(default_factory=list)
    user_created: bool = False
    membership_updated: bool = False
    card_created: bool = False
    card_updated: bool = False
    membership_number: str | None = None
    error: str | None = None


class ReconcileRequest(BaseModel):
    email: str
