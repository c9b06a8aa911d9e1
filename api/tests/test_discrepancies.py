"""Tests for Stripe vs. internal discrepancy detection."""

from __future__ import annotations

import uuid
from datetime import timedelta

from api.services.discrepancies import dates_differ, detect_discrepancies
from fakes import NOW
from trailclub.schemas.reconciliation import (
    CardSnapshot,
    DiscrepancyType,
    InternalDataSnapshot,
    MembershipSnapshot,
    StripeDataSnapshot,
)

PERIOD_END = NOW + timedelta(days=365)


def _stripe(**overrides) -> StripeDataSnapshot:
    values = {
        "customer_id": "cus_1",
        "customer_email": "member@example.org",
        "subscription_id": "sub_1",
        "subscription_status": "active",
        "price_id": "price_individual",
        "plan_type": "individual",
        "current_period_start": NOW,
        "current_period_end": PERIOD_END,
    }
    values.update(overrides)
    return StripeDataSnapshot(**values)


def _membership(**overrides) -> MembershipSnapshot:
    values = {
        "id": uuid.uuid4(),
        "subscription_id": "sub_1",
        "status": "active",
        "plan_type": "individual",
        "start_date": NOW,
        "end_date": PERIOD_END,
        "auto_renew": True,
    }
    values.update(overrides)
    return MembershipSnapshot(**values)


def _card(**overrides) -> CardSnapshot:
    values = {
        "membership_number": "DEC-2026-000001",
        "status": "active",
        "plan_type": "individual",
        "valid_from": NOW,
        "valid_until": PERIOD_END,
    }
    values.update(overrides)
    return CardSnapshot(**values)


def _internal(membership=..., card=...) -> InternalDataSnapshot:
    return InternalDataSnapshot(
        user_id=uuid.uuid4(),
        user_email="member@example.org",
        membership=_membership() if membership is ... else membership,
        card=_card() if card is ... else card,
    )


def test_no_stripe_data_means_no_external_customer():
    assert detect_discrepancies(None, _internal()) == [DiscrepancyType.NO_EXTERNAL_CUSTOMER]
    assert detect_discrepancies(None, None) == [DiscrepancyType.NO_EXTERNAL_CUSTOMER]


def test_missing_user_reports_everything_missing():
    assert detect_discrepancies(_stripe(), None) == [
        DiscrepancyType.MISSING_INTERNAL_USER,
        DiscrepancyType.MISSING_INTERNAL_MEMBERSHIP,
        DiscrepancyType.MISSING_INTERNAL_CARD,
    ]


def test_aligned_records_report_no_discrepancy():
    assert detect_discrepancies(_stripe(), _internal()) == [DiscrepancyType.NO_DISCREPANCY]


def test_missing_membership_and_card():
    result = detect_discrepancies(_stripe(), _internal(membership=None, card=None))
    assert result == [
        DiscrepancyType.MISSING_INTERNAL_MEMBERSHIP,
        DiscrepancyType.MISSING_INTERNAL_CARD,
    ]


def test_card_without_membership_is_not_compared():
    result = detect_discrepancies(_stripe(), _internal(membership=None))
    assert result == [DiscrepancyType.MISSING_INTERNAL_MEMBERSHIP]


def test_past_due_in_stripe_flags_status_and_card():
    result = detect_discrepancies(_stripe(subscription_status="past_due"), _internal())
    assert result == [DiscrepancyType.STATUS_MISMATCH]

    stale_card = _internal(
        membership=_membership(status="past_due"),
        card=_card(status="active"),
    )
    result = detect_discrepancies(_stripe(subscription_status="past_due"), stale_card)
    assert result == [DiscrepancyType.CARD_STATUS_MISMATCH]


def test_plan_mismatch():
    result = detect_discrepancies(_stripe(plan_type="family"), _internal())
    assert result == [DiscrepancyType.PLAN_MISMATCH]


def test_card_status_and_plan_difference_is_flagged_once():
    internal = _internal(card=_card(status="canceled", plan_type="family"))
    result = detect_discrepancies(_stripe(), internal)
    assert result == [DiscrepancyType.CARD_STATUS_MISMATCH]


def test_end_date_within_a_day_is_tolerated():
    stripe_data = _stripe(current_period_end=PERIOD_END + timedelta(hours=23, minutes=59))
    internal = _internal(card=_card(valid_until=PERIOD_END + timedelta(hours=23, minutes=59)))
    assert detect_discrepancies(stripe_data, internal) == [DiscrepancyType.NO_DISCREPANCY]


def test_end_date_just_over_a_day_is_flagged():
    stripe_data = _stripe(current_period_end=PERIOD_END + timedelta(days=1, seconds=1))
    result = detect_discrepancies(stripe_data, _internal())
    assert result == [DiscrepancyType.DATE_MISMATCH]


def test_card_dates_mismatch():
    internal = _internal(card=_card(valid_until=PERIOD_END - timedelta(days=30)))
    result = detect_discrepancies(_stripe(), internal)
    assert result == [DiscrepancyType.CARD_DATES_MISMATCH]


def test_detection_order_is_stable():
    internal = _internal(
        membership=_membership(status="canceled", plan_type="family"),
        card=_card(valid_until=PERIOD_END - timedelta(days=90)),
    )
    result = detect_discrepancies(
        _stripe(current_period_end=PERIOD_END + timedelta(days=30)), internal
    )
    assert result == [
        DiscrepancyType.STATUS_MISMATCH,
        DiscrepancyType.PLAN_MISMATCH,
        DiscrepancyType.DATE_MISMATCH,
        DiscrepancyType.CARD_STATUS_MISMATCH,
        DiscrepancyType.CARD_DATES_MISMATCH,
    ]


def test_dates_differ_boundary():
    assert dates_differ(NOW, NOW + timedelta(days=1)) is False
    assert dates_differ(NOW + timedelta(days=1, microseconds=1), NOW) is True
