import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from presskit.features.billing.provider import BillingProviderError, BillingWebhookError, epoch_to_iso
from presskit.features.billing.stripe_provider import StripeProvider, _payment_method, _subscription

WEBHOOK_SECRET = "whsec_test_secret"


def _signature(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def provider():
    return StripeProvider("sk_test_123", WEBHOOK_SECRET)


def test_requires_secret_key():
    with pytest.raises(BillingProviderError):
        StripeProvider(None)


def test_subscription_mapping():
    sub = {
        "id": "sub_1",
        "status": "active",
        "customer": "cus_1",
        "current_period_end": 1893456000,
        "cancel_at_period_end": False,
        "items": {"data": [{"id": "si_1", "price": {"id": "price_pro"}}]},
        "latest_invoice": {"payment_intent": {"client_secret": "pi_secret"}},
    }
    assert _subscription(sub) == {
        "id": "sub_1",
        "status": "active",
        "customerId": "cus_1",
        "priceId": "price_pro",
        "itemId": "si_1",
        "currentPeriodEnd": "2030-01-01T00:00:00+00:00",
        "cancelAtPeriodEnd": False,
        "clientSecret": "pi_secret",
    }
    assert _subscription({"id": "sub_2"})["priceId"] is None


def test_payment_method_mapping():
    pm = {"id": "pm_1", "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}}
    assert _payment_method(pm) == {"id": "pm_1", "brand": "visa", "last4": "4242", "expMonth": 12, "expYear": 2030}


def test_epoch_to_iso():
    assert epoch_to_iso(None) is None
    assert epoch_to_iso(0) is None
    assert epoch_to_iso(86400) == "1970-01-02T00:00:00+00:00"


def test_sdk_errors_become_fixed_messages(provider, monkeypatch):
    def explode(**kwargs):
        raise stripe.StripeError("card_declined: internal detail")

    monkeypatch.setattr(stripe.Customer, "create", explode)
    with pytest.raises(BillingProviderError) as exc:
        provider.create_customer("artist@example.com")
    assert exc.value.message == "Failed to create customer"
    assert exc.value.status_code == 500


def test_webhook_with_valid_signature(provider):
    payload = json.dumps({"id": "evt_1", "object": "event", "type": "invoice.paid", "data": {"object": {}}}).encode()
    event = provider.construct_webhook_event(payload, _signature(payload))
    assert event["id"] == "evt_1"
    assert event["type"] == "invoice.paid"


@pytest.mark.parametrize("signature", [None, "t=1,v1=deadbeef"])
def test_webhook_rejects_missing_or_bad_signature(provider, signature):
    payload = b'{"id": "evt_1", "object": "event"}'
    with pytest.raises(BillingWebhookError) as exc:
        provider.construct_webhook_event(payload, signature)
    assert exc.value.status_code == 400


def test_webhook_rejects_signature_from_other_secret(provider):
    payload = b'{"id": "evt_1", "object": "event"}'
    with pytest.raises(BillingWebhookError, match="Invalid webhook signature"):
        provider.construct_webhook_event(payload, _signature(payload, "whsec_other"))


def test_webhook_requires_configured_secret():
    with pytest.raises(BillingWebhookError, match="Webhook secret not configured"):
        StripeProvider("sk_test_123").construct_webhook_event(b"{}", "t=1,v1=x")


def test_payment_intent_and_invoice_shapes(provider, monkeypatch):
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "create",
        lambda **kwargs: SimpleNamespace(id="pi_1", client_secret="pi_1_secret", status="requires_payment_method"),
    )
    monkeypatch.setattr(
        stripe.Invoice,
        "retrieve",
        lambda invoice_id: SimpleNamespace(
            id=invoice_id,
            status="paid",
            amount_due=1900,
            amount_paid=1900,
            currency="usd",
            hosted_invoice_url="https://invoice.stripe.test/in_1",
            created=86400,
        ),
    )

    assert provider.create_payment_intent(1900, "usd", "cus_1") == {
        "id": "pi_1",
        "clientSecret": "pi_1_secret",
        "status": "requires_payment_method",
    }
    invoice = provider.get_invoice_details("in_1")
    assert invoice["amountPaid"] == 1900
    assert invoice["created"] == "1970-01-02T00:00:00+00:00"
