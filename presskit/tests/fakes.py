"""In-memory stand-ins for Redis, the mail relay, the asset host and Stripe."""

import fnmatch
import json
import time
from itertools import count
from typing import Any, Dict, List, Optional

from redis.exceptions import ConnectionError as RedisConnectionError

from presskit.core.errors import ExternalServiceError
from presskit.features.billing.provider import BillingProviderError, BillingWebhookError
from presskit.features.media.provider import AssetHostError, UploadedAsset


class FakeRedis:
    """The subset of the redis-py client that Cache uses. ``down = True`` simulates an outage."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.expiry: Dict[str, float] = {}
        self.down = False
        self.calls: List[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.down:
            raise RedisConnectionError("Connection refused")

    def _live(self, key: str) -> bool:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    def get(self, key):
        self._check("get")
        return self.store[key] if self._live(key) else None

    def set(self, key, value, ex=None):
        self._check("set")
        self.store[key] = value
        if ex:
            self.expiry[key] = time.monotonic() + ex
        else:
            self.expiry.pop(key, None)
        return True

    def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self._live(key):
                removed += 1
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return removed

    def exists(self, key):
        self._check("exists")
        return 1 if self._live(key) else 0

    def incr(self, key, amount=1):
        self._check("incr")
        value = int(self.store.get(key, 0)) + amount if self._live(key) else amount
        self.store[key] = str(value)
        return value

    def hset(self, key, field, value):
        self._check("hset")
        self.store.setdefault(key, {})[field] = value
        return 1

    def hget(self, key, field):
        self._check("hget")
        return self.store.get(key, {}).get(field)

    def hgetall(self, key):
        self._check("hgetall")
        return dict(self.store.get(key, {}))

    def hdel(self, key, *fields):
        self._check("hdel")
        bucket = self.store.get(key, {})
        removed = sum(1 for f in fields if bucket.pop(f, None) is not None)
        if not bucket:
            self.store.pop(key, None)
        return removed

    def scan_iter(self, match="*"):
        self._check("scan_iter")
        return [key for key in list(self.store) if self._live(key) and fnmatch.fnmatchcase(key, match)]

    def ping(self):
        self._check("ping")
        return True


class RecordingMailer:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        if self.fail:
            raise ExternalServiceError("Failed to send email")
        self.sent.append({"to": to, "subject": subject, "html": html})

    def to(self, address: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["to"] == address]


class FakeAssetHost:
    def __init__(self):
        self.uploads: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.fail = False
        self._ids = count(1)

    def upload(self, content: bytes, filename: str, content_type: str, folder: str) -> UploadedAsset:
        if self.fail:
            raise AssetHostError("bucket unavailable")
        ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        public_id = f"{folder}/asset-{next(self._ids)}.{ext}"
        self.uploads.append({"public_id": public_id, "filename": filename, "content_type": content_type, "folder": folder})
        return UploadedAsset(
            url=f"https://assets.example.test/{public_id}",
            public_id=public_id,
            format=ext,
            size=len(content),
            resource_type=content_type.split("/")[0],
        )

    def delete(self, public_id: str) -> None:
        if self.fail:
            raise AssetHostError("bucket unavailable")
        self.deleted.append(public_id)


class FakeBillingProvider:
    """Accepts the webhook signature ``"valid"``; everything else is rejected."""

    def __init__(self):
        self.customers: List[Dict[str, Any]] = []
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.payment_methods: Dict[str, List[Dict[str, Any]]] = {}
        self.fail = False
        self._ids = count(1)

    def _maybe_fail(self, message: str) -> None:
        if self.fail:
            raise BillingProviderError(message)

    def create_customer(self, email, name=None, metadata=None) -> str:
        self._maybe_fail("Failed to create customer")
        customer_id = f"cus_{next(self._ids)}"
        self.customers.append({"id": customer_id, "email": email, "name": name, "metadata": metadata})
        return customer_id

    def create_subscription(self, customer_id, price_id, payment_method_id):
        self._maybe_fail("Failed to create subscription")
        sub_id = f"sub_{next(self._ids)}"
        sub = {
            "id": sub_id,
            "status": "active",
            "customer": customer_id,
            "priceId": price_id,
            "currentPeriodEnd": "2030-01-01T00:00:00+00:00",
            "clientSecret": "pi_secret",
        }
        self.subscriptions[sub_id] = sub
        return dict(sub)

    def update_subscription(self, subscription_id, price_id):
        self._maybe_fail("Failed to update subscription")
        sub = self.subscriptions[subscription_id]
        sub["priceId"] = price_id
        return dict(sub)

    def cancel_subscription(self, subscription_id):
        self._maybe_fail("Failed to cancel subscription")
        sub = self.subscriptions.pop(subscription_id)
        return dict(sub, status="canceled")

    def get_subscription_details(self, subscription_id):
        return dict(self.subscriptions.get(subscription_id, {"id": subscription_id, "status": "canceled"}))

    def get_payment_methods(self, customer_id):
        return list(self.payment_methods.get(customer_id, []))

    def add_payment_method(self, customer_id, payment_method_id):
        self._maybe_fail("Failed to add payment method")
        pm = {"id": payment_method_id, "brand": "visa", "last4": "4242", "expMonth": 12, "expYear": 2030}
        self.payment_methods.setdefault(customer_id, []).append(pm)
        return pm

    def remove_payment_method(self, payment_method_id):
        for methods in self.payment_methods.values():
            methods[:] = [pm for pm in methods if pm["id"] != payment_method_id]

    def create_payment_intent(self, amount, currency, customer_id):
        return {"id": f"pi_{next(self._ids)}", "clientSecret": "pi_secret", "amount": amount, "currency": currency}

    def get_invoice_details(self, invoice_id):
        return {"id": invoice_id, "status": "paid"}

    def construct_webhook_event(self, payload, signature):
        if signature != "valid":
            raise BillingWebhookError("Invalid webhook signature")
        return json.loads(payload)
