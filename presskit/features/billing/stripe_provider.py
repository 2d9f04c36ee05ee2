"""
Stripe billing provider implementation.

Implements BillingProvider protocol using the Stripe API. SDK errors are
logged with detail and re-raised with a fixed message.
"""
import logging
from typing import Any, Dict, List, Optional

import stripe

from presskit.features.billing.provider import BillingProviderError, BillingWebhookError, epoch_to_iso

logger = logging.getLogger("presskit")


def _subscription(sub: Dict[str, Any]) -> Dict[str, Any]:
    items = (sub.get("items") or {}).get("data") or []
    price = items[0].get("price") if items else None
    invoice = sub.get("latest_invoice") or {}
    intent = invoice.get("payment_intent") if isinstance(invoice, dict) else None
    return {
        "id": sub.get("id"),
        "status": sub.get("status"),
        "customerId": sub.get("customer"),
        "priceId": price.get("id") if price else None,
        "itemId": items[0].get("id") if items else None,
        "currentPeriodEnd": epoch_to_iso(sub.get("current_period_end")),
        "cancelAtPeriodEnd": bool(sub.get("cancel_at_period_end")),
        "clientSecret": intent.get("client_secret") if isinstance(intent, dict) else None,
    }


def _payment_method(pm: Dict[str, Any]) -> Dict[str, Any]:
    card = pm.get("card") or {}
    return {
        "id": pm.get("id"),
        "brand": card.get("brand"),
        "last4": card.get("last4"),
        "expMonth": card.get("exp_month"),
        "expYear": card.get("exp_year"),
    }


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None):
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")
        self.webhook_secret = webhook_secret
        stripe.api_key = secret_key

    def _fail(self, message: str, exc: Exception, **context) -> BillingProviderError:
        logger.error("stripe.error", extra={"operation": message, "error_message": str(exc), **context})
        return BillingProviderError(message)

    def create_customer(self, email: str, name: Optional[str] = None, metadata: Optional[Dict[str, str]] = None) -> str:
        try:
            customer = stripe.Customer.create(email=email, name=name, metadata=metadata or {})
            return customer.id
        except stripe.StripeError as e:
            raise self._fail("Failed to create customer", e)

    def create_subscription(self, customer_id: str, price_id: str, payment_method_id: str) -> Dict[str, Any]:
        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
            stripe.Customer.modify(customer_id, invoice_settings={"default_payment_method": payment_method_id})
            sub = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                expand=["latest_invoice.payment_intent"],
            )
            return _subscription(sub)
        except stripe.StripeError as e:
            raise self._fail("Failed to create subscription", e, customer_id=customer_id)

    def update_subscription(self, subscription_id: str, price_id: str) -> Dict[str, Any]:
        try:
            current = stripe.Subscription.retrieve(subscription_id)
            item_id = current["items"]["data"][0]["id"]
            sub = stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "price": price_id}],
                proration_behavior="create_prorations",
            )
            return _subscription(sub)
        except stripe.StripeError as e:
            raise self._fail("Failed to update subscription", e, subscription_id=subscription_id)

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            return _subscription(stripe.Subscription.cancel(subscription_id))
        except stripe.StripeError as e:
            raise self._fail("Failed to cancel subscription", e, subscription_id=subscription_id)

    def get_subscription_details(self, subscription_id: str) -> Dict[str, Any]:
        try:
            sub = stripe.Subscription.retrieve(subscription_id, expand=["latest_invoice.payment_intent"])
            return _subscription(sub)
        except stripe.StripeError as e:
            raise self._fail("Failed to get subscription details", e, subscription_id=subscription_id)

    def get_payment_methods(self, customer_id: str) -> List[Dict[str, Any]]:
        try:
            methods = stripe.PaymentMethod.list(customer=customer_id, type="card")
            return [_payment_method(pm) for pm in methods.data]
        except stripe.StripeError as e:
            raise self._fail("Failed to get payment methods", e, customer_id=customer_id)

    def add_payment_method(self, customer_id: str, payment_method_id: str) -> Dict[str, Any]:
        try:
            return _payment_method(stripe.PaymentMethod.attach(payment_method_id, customer=customer_id))
        except stripe.StripeError as e:
            raise self._fail("Failed to add payment method", e, customer_id=customer_id)

    def remove_payment_method(self, payment_method_id: str) -> None:
        try:
            stripe.PaymentMethod.detach(payment_method_id)
        except stripe.StripeError as e:
            raise self._fail("Failed to remove payment method", e)

    def create_payment_intent(self, amount: int, currency: str, customer_id: str) -> Dict[str, Any]:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                customer=customer_id,
                automatic_payment_methods={"enabled": True},
            )
            return {"id": intent.id, "clientSecret": intent.client_secret, "status": intent.status}
        except stripe.StripeError as e:
            raise self._fail("Failed to create payment intent", e, customer_id=customer_id)

    def get_invoice_details(self, invoice_id: str) -> Dict[str, Any]:
        try:
            invoice = stripe.Invoice.retrieve(invoice_id)
            return {
                "id": invoice.id,
                "status": invoice.status,
                "amountDue": invoice.amount_due,
                "amountPaid": invoice.amount_paid,
                "currency": invoice.currency,
                "hostedInvoiceUrl": invoice.hosted_invoice_url,
                "created": epoch_to_iso(invoice.created),
            }
        except stripe.StripeError as e:
            raise self._fail("Failed to get invoice details", e, invoice_id=invoice_id)

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise BillingWebhookError("Webhook secret not configured")
        if not signature:
            raise BillingWebhookError("Missing stripe-signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.warning("stripe.webhook_invalid_payload", extra={"error_message": str(e)})
            raise BillingWebhookError("Invalid webhook payload")
        except stripe.SignatureVerificationError as e:
            logger.warning("stripe.webhook_bad_signature", extra={"error_message": str(e)})
            raise BillingWebhookError("Invalid webhook signature")
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)
