"""Tests for the Stripe client wrapper."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import patch

import pytest
import stripe
from api.services.payment_client import (
    StripePaymentClient,
    subscription_from_stripe,
    verify_webhook_signature,
)
from fakes import sign_webhook_payload
from trailclub.errors import PaymentProviderError

PERIOD_START = 1772366400  # 2026-03-01T12:00:00Z
PERIOD_END = 1803902400


def test_subscription_from_stripe_reads_top_level_period():
    sub = subscription_from_stripe(
        {
            "id": "sub_1",
            "customer": "cus_1",
            "status": "active",
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
            "cancel_at_period_end": True,
            "items": {"data": [{"price": {"id": "price_family"}}]},
        }
    )

    assert sub.id == "sub_1"
    assert sub.customer_id == "cus_1"
    assert sub.price_id == "price_family"
    assert sub.period_start == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert sub.cancel_at_period_end is True


def test_subscription_from_stripe_falls_back_to_item_period():
    sub = subscription_from_stripe(
        {
            "id": "sub_2",
            "customer": {"id": "cus_2"},
            "status": "trialing",
            "items": {
                "data": [
                    {
                        "price": {"id": "price_individual"},
                        "current_period_start": PERIOD_START,
                        "current_period_end": PERIOD_END,
                    }
                ]
            },
        }
    )

    assert sub.customer_id == "cus_2"
    assert sub.period_start is not None
    assert sub.period_end is not None


def test_subscription_from_stripe_leaves_missing_dates_empty():
    sub = subscription_from_stripe({"id": "sub_3", "customer": "cus_3", "status": "active"})
    assert sub.period_start is None
    assert sub.period_end is None
    assert sub.price_id == ""


def test_verify_webhook_signature_requires_secret():
    with pytest.raises(RuntimeError):
        verify_webhook_signature(b"{}", "sig", "")


def test_client_requires_api_key():
    with pytest.raises(RuntimeError):
        StripePaymentClient("")


@pytest.mark.asyncio
async def test_stripe_errors_become_payment_provider_errors():
    client = StripePaymentClient("sk_test_123")
    with patch(
        "api.services.payment_client.stripe.Customer.list",
        side_effect=stripe.APIConnectionError("network down"),
    ):
        with pytest.raises(PaymentProviderError) as exc_info:
            await client.get_customer_by_email("a@example.org")

    assert exc_info.value.code == "CUSTOMER_LOOKUP_FAILED"


@pytest.mark.asyncio
async def test_get_customer_by_email_passes_api_key_per_call():
    client = StripePaymentClient("sk_test_123")
    with patch(
        "api.services.payment_client.stripe.Customer.list",
        return_value=stripe.ListObject.construct_from(
            {
                "object": "list",
                "data": [{"id": "cus_1", "object": "customer", "email": "a@example.org"}],
            },
            "sk_test_123",
        ),
    ) as customer_list:
        customer = await client.get_customer_by_email("a@example.org")

    assert customer.id == "cus_1"
    customer_list.assert_called_once_with(api_key="sk_test_123", email="a@example.org", limit=1)


@pytest.mark.asyncio
async def test_list_subscriptions_normalizes_payloads():
    client = StripePaymentClient("sk_test_123")
    payload = {
        "object": "list",
        "data": [
            {
                "id": "sub_1",
                "object": "subscription",
                "customer": "cus_1",
                "status": "active",
                "current_period_start": PERIOD_START,
                "current_period_end": PERIOD_END,
            }
        ]
    }
    listing = stripe.ListObject.construct_from(payload, "sk_test_123")
    with patch("api.services.payment_client.stripe.Subscription.list", return_value=listing):
        subs = await client.list_subscriptions("cus_1")

    assert [s.id for s in subs] == ["sub_1"]


@pytest.mark.asyncio
async def test_retrieve_subscription_reads_nested_sdk_objects():
    client = StripePaymentClient("sk_test_123")
    subscription = stripe.Subscription.construct_from(
        {
            "id": "sub_9",
            "object": "subscription",
            "customer": "cus_9",
            "status": "past_due",
            "cancel_at_period_end": False,
            "items": {
                "object": "list",
                "data": [
                    {
                        "id": "si_1",
                        "object": "subscription_item",
                        "price": {"id": "price_family", "object": "price"},
                        "current_period_start": PERIOD_START,
                        "current_period_end": PERIOD_END,
                    }
                ],
            },
        },
        "sk_test_123",
    )
    with patch(
        "api.services.payment_client.stripe.Subscription.retrieve", return_value=subscription
    ):
        sub = await client.retrieve_subscription("sub_9")

    assert sub.customer_id == "cus_9"
    assert sub.price_id == "price_family"
    assert sub.period_start == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_verify_webhook_signature_returns_plain_dict():
    body = (
        b'{"id": "evt_1", "object": "event", "type": "customer.subscription.deleted",'
        b' "data": {"object": {"id": "sub_1", "object": "subscription"}}}'
    )
    header = sign_webhook_payload(body, "whsec_test")

    event = verify_webhook_signature(body, header, "whsec_test")

    assert isinstance(event, dict)
    assert isinstance(event["data"]["object"], dict)
    assert event["data"]["object"]["id"] == "sub_1"


def test_verify_webhook_signature_rejects_wrong_secret():
    body = b'{"id": "evt_1", "object": "event", "type": "invoice.paid", "data": {"object": {}}}'
    header = sign_webhook_payload(body, "whsec_other")

    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook_signature(body, header, "whsec_test")
