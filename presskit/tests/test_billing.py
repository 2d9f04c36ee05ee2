"""Subscriptions, payment methods and webhook processing."""

import json

from fastapi.testclient import TestClient
from sqlalchemy import select

from presskit.core.database import billing_events
from presskit.main import create_app
from presskit.models.user import Tier


def _webhook(client, event, signature="valid"):
    return client.post(
        "/api/v1/billing/webhook",
        content=json.dumps(event),
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


def _subscription_event(event_id, customer_id, price_id, status="active"):
    return {
        "id": event_id,
        "type": "customer.subscription.updated",
        "data": {
            "object": {
                "id": "sub_webhook",
                "customer": customer_id,
                "status": status,
                "current_period_end": 1893456000,
                "items": {"data": [{"price": {"id": price_id}}]},
            }
        },
    }


def _me(client, account):
    return client.get("/api/v1/auth/me", headers=account["headers"]).json()["data"]


def test_subscribe_grants_plan_tier(client, register_user, mailer):
    account = register_user()
    mailer.sent.clear()
    resp = client.post(
        "/api/v1/billing/subscription",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=account["headers"],
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["plan"] == "pro"
    assert data["status"] == "active"
    assert data["stripeSubscriptionId"].startswith("sub_")
    assert _me(client, account)["tier"] == "pro"
    assert len(mailer.to(account["user"]["email"])) == 1


def test_basic_plan_maps_to_premium_tier(client, register_user):
    account = register_user()
    client.post("/api/v1/billing/subscription", json={"plan": "basic", "paymentMethodId": "pm_1"}, headers=account["headers"])
    assert _me(client, account)["tier"] == "premium"


def test_second_subscription_is_rejected(client, register_user):
    account = register_user()
    body = {"plan": "pro", "paymentMethodId": "pm_1"}
    client.post("/api/v1/billing/subscription", json=body, headers=account["headers"])
    resp = client.post("/api/v1/billing/subscription", json=body, headers=account["headers"])
    assert resp.status_code == 400
    assert resp.json()["error"] == "User already has an active subscription"


def test_unknown_plan_is_a_validation_error(client, register_user):
    account = register_user()
    resp = client.post(
        "/api/v1/billing/subscription",
        json={"plan": "platinum", "paymentMethodId": "pm_1"},
        headers=account["headers"],
    )
    assert resp.status_code == 400


def test_change_plan_and_cancel(client, register_user):
    account = register_user()
    client.post("/api/v1/billing/subscription", json={"plan": "basic", "paymentMethodId": "pm_1"}, headers=account["headers"])

    changed = client.put("/api/v1/billing/subscription", json={"plan": "enterprise"}, headers=account["headers"])
    assert changed.status_code == 200
    assert _me(client, account)["tier"] == "enterprise"

    current = client.get("/api/v1/billing/subscription", headers=account["headers"]).json()["data"]
    assert current["details"]["priceId"] == "price_enterprise"

    canceled = client.delete("/api/v1/billing/subscription", headers=account["headers"])
    assert canceled.status_code == 200
    assert canceled.json()["data"]["status"] == "canceled"
    assert _me(client, account)["tier"] == "free"


def test_change_plan_without_subscription_is_404(client, register_user):
    account = register_user()
    resp = client.put("/api/v1/billing/subscription", json={"plan": "pro"}, headers=account["headers"])
    assert resp.status_code == 404
    assert resp.json()["error"] == "No active subscription found"


def test_payment_methods_roundtrip(client, register_user):
    account = register_user()
    added = client.post("/api/v1/billing/payment-methods", json={"paymentMethodId": "pm_visa"}, headers=account["headers"])
    assert added.status_code == 201

    listed = client.get("/api/v1/billing/payment-methods", headers=account["headers"]).json()["data"]
    assert [pm["id"] for pm in listed] == ["pm_visa"]

    removed = client.delete("/api/v1/billing/payment-methods/pm_visa", headers=account["headers"])
    assert removed.status_code == 200
    assert client.get("/api/v1/billing/payment-methods", headers=account["headers"]).json()["data"] == []


def test_removing_someone_elses_payment_method_is_404(client, register_user):
    owner = register_user()
    client.post("/api/v1/billing/payment-methods", json={"paymentMethodId": "pm_owner"}, headers=owner["headers"])
    stranger = register_user()
    resp = client.delete("/api/v1/billing/payment-methods/pm_owner", headers=stranger["headers"])
    assert resp.status_code == 404


def test_provider_failure_is_a_fixed_500(client, register_user, payments):
    account = register_user()
    payments.fail = True
    resp = client.post("/api/v1/billing/subscription", json={"plan": "pro", "paymentMethodId": "pm_1"}, headers=account["headers"])
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to create subscription"


def test_webhook_rejects_bad_signature(client):
    resp = _webhook(client, {"id": "evt_bad", "type": "payment_intent.succeeded"}, signature="forged")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid webhook signature"


def test_webhook_subscription_update_syncs_tier(client, register_user):
    account = register_user()
    customer_id = account["user"]["subscription"]["stripeCustomerId"]

    resp = _webhook(client, _subscription_event("evt_1", customer_id, "price_pro"))
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "duplicate": False}

    me = _me(client, account)
    assert me["tier"] == "pro"
    assert me["subscription"]["stripeSubscriptionId"] == "sub_webhook"
    assert me["subscription"]["currentPeriodEnd"].startswith("2030-01-01")


def test_duplicate_webhook_is_acknowledged_not_reprocessed(client, register_user, services, engine):
    account = register_user()
    customer_id = account["user"]["subscription"]["stripeCustomerId"]
    event = _subscription_event("evt_dup", customer_id, "price_pro")

    assert _webhook(client, event).json()["duplicate"] is False
    services.users.set_tier(account["user"]["id"], Tier.PREMIUM)

    again = _webhook(client, event)
    assert again.status_code == 200
    assert again.json() == {"received": True, "duplicate": True}

    with engine.connect() as conn:
        rows = conn.execute(select(billing_events).where(billing_events.c.stripe_event_id == "evt_dup")).mappings().all()
    assert len(rows) == 1
    assert rows[0]["processed"] is True
    assert _me(client, account)["tier"] == "premium"


def test_webhook_subscription_deleted_downgrades(client, register_user):
    account = register_user()
    customer_id = account["user"]["subscription"]["stripeCustomerId"]
    _webhook(client, _subscription_event("evt_up", customer_id, "price_enterprise"))
    assert _me(client, account)["tier"] == "enterprise"

    deleted = {"id": "evt_down", "type": "customer.subscription.deleted", "data": {"object": {"id": "sub_webhook", "customer": customer_id}}}
    assert _webhook(client, deleted).status_code == 200
    me = _me(client, account)
    assert me["tier"] == "free"
    assert me["subscription"]["status"] == "canceled"


def test_webhook_for_unknown_customer_is_acknowledged(client):
    resp = _webhook(client, _subscription_event("evt_orphan", "cus_unknown", "price_pro"))
    assert resp.status_code == 200


def test_unhandled_webhook_type_is_acknowledged(client):
    resp = _webhook(client, {"id": "evt_misc", "type": "invoice.finalized", "data": {"object": {}}})
    assert resp.status_code == 200


def test_billing_routes_are_503_when_disabled(settings, engine, cache, mailer):
    client = TestClient(create_app(settings, engine=engine, cache=cache, mailer=mailer))
    register = client.post(
        "/api/v1/auth/register",
        json={"email": "nobill@example.com", "username": "nobill", "password": "Str0ng!Pass"},
    )
    assert register.status_code == 201
    data = register.json()["data"]
    assert data["user"]["subscription"]["stripeCustomerId"] is None

    headers = {"Authorization": f"Bearer {data['token']}"}
    resp = client.get("/api/v1/billing/subscription", headers=headers)
    assert resp.status_code == 503
    assert resp.json()["error"] == "Billing is not configured"

    webhook = client.post("/api/v1/billing/webhook", content=b"{}", headers={"stripe-signature": "valid"})
    assert webhook.status_code == 503
