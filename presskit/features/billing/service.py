"""
Billing service orchestrator.

Coordinates:
- Customer management (created at registration when billing is enabled)
- Subscription lifecycle and tier synchronization
- Payment methods
- Webhook processing, deduplicated through the billing_events ledger

All Stripe-specific code is in stripe_provider.py.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from presskit.core.config import Settings
from presskit.core.database import Database, billing_events, users
from presskit.core.errors import BadRequestError, ExternalServiceError, NotFoundError, ServiceUnavailableError
from presskit.core.logging import log_event
from presskit.features.billing.provider import BillingProvider, epoch_to_iso
from presskit.features.crud import utc_now
from presskit.features.notifications.service import NotificationService
from presskit.models.user import Tier

logger = logging.getLogger("presskit")

# Public plan name -> tier granted while the subscription is active.
PLAN_TIERS = {
    "basic": Tier.PREMIUM,
    "pro": Tier.PRO,
    "enterprise": Tier.ENTERPRISE,
}

ACTIVE_STATUSES = {"active", "trialing"}


def free_subscription(customer_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "plan": Tier.FREE.value,
        "status": "active",
        "stripeCustomerId": customer_id,
        "stripeSubscriptionId": None,
        "currentPeriodEnd": None,
    }


class BillingService:
    def __init__(self, db: Database, provider: Optional[BillingProvider], settings: Settings, notifications: NotificationService):
        self.db = db
        self.provider = provider
        self.notifications = notifications
        self.price_ids = {
            "basic": settings.STRIPE_BASIC_PLAN_ID,
            "pro": settings.STRIPE_PRO_PLAN_ID,
            "enterprise": settings.STRIPE_ENTERPRISE_PLAN_ID,
        }

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def _require(self) -> BillingProvider:
        if self.provider is None:
            raise ServiceUnavailableError("Billing is not configured")
        return self.provider

    def _price_for(self, plan: str) -> str:
        price_id = self.price_ids.get(plan)
        if not price_id:
            raise BadRequestError(f"Plan {plan} is not available")
        return price_id

    def _plan_for_price(self, price_id: Optional[str]) -> Optional[str]:
        for plan, candidate in self.price_ids.items():
            if candidate and candidate == price_id:
                return plan
        return None

    def _save(self, session, user_id: str, subscription: Dict[str, Any], tier: Optional[Tier] = None) -> None:
        values: Dict[str, Any] = {"subscription": subscription, "updated_at": utc_now()}
        if subscription.get("stripeCustomerId"):
            values["stripe_customer_id"] = subscription["stripeCustomerId"]
        if tier is not None:
            values["tier"] = tier.value
        session.execute(update(users).where(users.c.id == user_id).values(**values))

    # -- customers ---------------------------------------------------------

    def create_customer(self, email: str, name: Optional[str] = None) -> Optional[str]:
        """Create a processor customer for a new account; None when billing is disabled."""
        if self.provider is None:
            return None
        return self.provider.create_customer(email, name)

    def ensure_customer(self, user: Mapping[str, Any]) -> str:
        provider = self._require()
        customer_id = (user.get("subscription") or {}).get("stripeCustomerId")
        if customer_id:
            return customer_id
        customer_id = provider.create_customer(user["email"], user.get("username"), {"user_id": user["id"]})
        with self.db.session() as session:
            subscription = dict(user.get("subscription") or free_subscription(), stripeCustomerId=customer_id)
            self._save(session, user["id"], subscription)
        return customer_id

    # -- subscriptions -----------------------------------------------------

    def get_subscription(self, user: Mapping[str, Any]) -> Dict[str, Any]:
        self._require()
        subscription = dict(user.get("subscription") or free_subscription())
        sub_id = subscription.get("stripeSubscriptionId")
        if sub_id:
            subscription["details"] = self.provider.get_subscription_details(sub_id)
        return subscription

    def subscribe(self, user: Mapping[str, Any], plan: str, payment_method_id: str) -> Dict[str, Any]:
        provider = self._require()
        if (user.get("subscription") or {}).get("stripeSubscriptionId"):
            raise BadRequestError("User already has an active subscription")
        price_id = self._price_for(plan)
        customer_id = self.ensure_customer(user)
        result = provider.create_subscription(customer_id, price_id, payment_method_id)

        tier = PLAN_TIERS[plan]
        subscription = {
            "plan": tier.value,
            "status": result.get("status") or "active",
            "stripeCustomerId": customer_id,
            "stripeSubscriptionId": result["id"],
            "currentPeriodEnd": result.get("currentPeriodEnd"),
        }
        granted = tier if subscription["status"] in ACTIVE_STATUSES else None
        with self.db.session() as session:
            self._save(session, user["id"], subscription, granted)

        try:
            self.notifications.send_subscription_confirmation(user, plan)
        except ExternalServiceError:
            logger.warning("billing.confirmation_email_failed", extra={"user_id": user["id"]})

        logger.info("billing.subscribed", extra={"user_id": user["id"], "plan": plan, "status": subscription["status"]})
        return {**subscription, "clientSecret": result.get("clientSecret")}

    def change_plan(self, user: Mapping[str, Any], plan: str) -> Dict[str, Any]:
        provider = self._require()
        current = dict(user.get("subscription") or {})
        sub_id = current.get("stripeSubscriptionId")
        if not sub_id:
            raise NotFoundError("No active subscription found")
        result = provider.update_subscription(sub_id, self._price_for(plan))

        tier = PLAN_TIERS[plan]
        current.update(plan=tier.value, status=result.get("status") or current.get("status"), currentPeriodEnd=result.get("currentPeriodEnd"))
        with self.db.session() as session:
            self._save(session, user["id"], current, tier if current["status"] in ACTIVE_STATUSES else None)
        logger.info("billing.plan_changed", extra={"user_id": user["id"], "plan": plan})
        return current

    def cancel(self, user: Mapping[str, Any]) -> Dict[str, Any]:
        provider = self._require()
        current = dict(user.get("subscription") or {})
        sub_id = current.get("stripeSubscriptionId")
        if not sub_id:
            raise NotFoundError("No active subscription found")
        provider.cancel_subscription(sub_id)

        subscription = dict(free_subscription(current.get("stripeCustomerId")), status="canceled")
        with self.db.session() as session:
            self._save(session, user["id"], subscription, Tier.FREE)
        logger.info("billing.canceled", extra={"user_id": user["id"]})
        return subscription

    # -- payment methods ---------------------------------------------------

    def list_payment_methods(self, user: Mapping[str, Any]) -> List[Dict[str, Any]]:
        provider = self._require()
        customer_id = (user.get("subscription") or {}).get("stripeCustomerId")
        if not customer_id:
            return []
        return provider.get_payment_methods(customer_id)

    def add_payment_method(self, user: Mapping[str, Any], payment_method_id: str) -> Dict[str, Any]:
        provider = self._require()
        return provider.add_payment_method(self.ensure_customer(user), payment_method_id)

    def remove_payment_method(self, user: Mapping[str, Any], payment_method_id: str) -> None:
        provider = self._require()
        owned = {pm["id"] for pm in self.list_payment_methods(user)}
        if payment_method_id not in owned:
            raise NotFoundError("Payment method not found")
        provider.remove_payment_method(payment_method_id)

    # -- webhooks ----------------------------------------------------------

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the signature, then process the event exactly once."""
        event = self._require().construct_webhook_event(payload, signature)
        return self.handle_webhook_event(event)

    def handle_webhook_event(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        event_id = event.get("id")
        event_type = event.get("type") or "unknown"
        if not event_id:
            raise BadRequestError("Webhook event is missing an id")

        try:
            with self.db.session() as session:
                session.execute(insert(billing_events).values(stripe_event_id=event_id, event_type=event_type, processed=False))
        except IntegrityError:
            logger.info("billing.webhook_duplicate", extra={"event_id": event_id, "event_type": event_type})
            return {"received": True, "duplicate": True}

        obj = (event.get("data") or {}).get("object") or {}
        try:
            self._dispatch(event_type, obj)
        except Exception as e:
            with self.db.session() as session:
                session.execute(
                    update(billing_events).where(billing_events.c.stripe_event_id == event_id).values(error=str(e))
                )
            raise

        with self.db.session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == event_id)
                .values(processed=True, processed_at=utc_now())
            )
        return {"received": True, "duplicate": False}

    def _dispatch(self, event_type: str, obj: Mapping[str, Any]) -> None:
        if event_type == "payment_intent.succeeded":
            log_event("info", "billing.payment_succeeded", event_type=event_type, payment_intent=obj.get("id"), amount=obj.get("amount"))
        elif event_type == "payment_intent.payment_failed":
            log_event("error", "billing.payment_failed", event_type=event_type, payment_intent=obj.get("id"), customer=obj.get("customer"))
        elif event_type == "customer.subscription.updated":
            self._sync_subscription(obj)
        elif event_type == "customer.subscription.deleted":
            self._subscription_deleted(obj)
        else:
            log_event("info", "billing.webhook_unhandled", event_type=event_type)

    def _user_for_customer(self, session, customer_id: Optional[str]) -> Optional[Mapping[str, Any]]:
        if not customer_id:
            return None
        return session.execute(select(users).where(users.c.stripe_customer_id == customer_id)).mappings().first()

    def _sync_subscription(self, obj: Mapping[str, Any]) -> None:
        with self.db.session() as session:
            user = self._user_for_customer(session, obj.get("customer"))
            if user is None:
                logger.warning("billing.unknown_customer", extra={"customer": obj.get("customer")})
                return
            items = (obj.get("items") or {}).get("data") or []
            price_id = (items[0].get("price") or {}).get("id") if items else None
            plan = self._plan_for_price(price_id)
            status = obj.get("status") or "active"

            subscription = dict(user["subscription"] or free_subscription())
            subscription.update(status=status, stripeSubscriptionId=obj.get("id"), stripeCustomerId=obj.get("customer"))
            if obj.get("current_period_end"):
                subscription["currentPeriodEnd"] = epoch_to_iso(obj["current_period_end"])

            tier = None
            if plan and status in ACTIVE_STATUSES:
                tier = PLAN_TIERS[plan]
                subscription["plan"] = tier.value
            elif status == "canceled":
                tier = Tier.FREE
                subscription["plan"] = Tier.FREE.value
            self._save(session, user["id"], subscription, tier)
        log_event("info", "billing.subscription_synced", user_id=user["id"], status=status, plan=plan)

    def _subscription_deleted(self, obj: Mapping[str, Any]) -> None:
        with self.db.session() as session:
            user = self._user_for_customer(session, obj.get("customer"))
            if user is None:
                logger.warning("billing.unknown_customer", extra={"customer": obj.get("customer")})
                return
            subscription = dict(free_subscription(obj.get("customer")), status="canceled")
            self._save(session, user["id"], subscription, Tier.FREE)
        log_event("info", "billing.subscription_deleted", user_id=user["id"])
