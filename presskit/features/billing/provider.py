"""
Billing provider protocol.

Defines the interface for payment processors (Stripe, etc.).
This allows swapping providers without changing business logic.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from presskit.core.errors import ExternalServiceError


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Customer creation
    - Subscription lifecycle (create, change plan, cancel, inspect)
    - Payment methods and one-off payment intents
    - Webhook signature verification and parsing

    Every method returns plain dicts so callers never touch SDK objects.
    """

    def create_customer(self, email: str, name: Optional[str] = None, metadata: Optional[Dict[str, str]] = None) -> str:
        """
        Returns:
            Provider customer ID (e.g., Stripe customer ID)

        Raises:
            BillingProviderError: If customer creation fails
        """
        ...

    def create_subscription(self, customer_id: str, price_id: str, payment_method_id: str) -> Dict[str, Any]:
        """Attach the payment method, make it the default, then subscribe the customer."""
        ...

    def update_subscription(self, subscription_id: str, price_id: str) -> Dict[str, Any]:
        """Switch the subscription's price with proration."""
        ...

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def get_subscription_details(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def get_payment_methods(self, customer_id: str) -> List[Dict[str, Any]]:
        ...

    def add_payment_method(self, customer_id: str, payment_method_id: str) -> Dict[str, Any]:
        ...

    def remove_payment_method(self, payment_method_id: str) -> None:
        ...

    def create_payment_intent(self, amount: int, currency: str, customer_id: str) -> Dict[str, Any]:
        ...

    def get_invoice_details(self, invoice_id: str) -> Dict[str, Any]:
        ...

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify webhook signature and parse event.

        Raises:
            BillingWebhookError: If signature invalid or parsing fails
        """
        ...


class BillingProviderError(ExternalServiceError):
    """Processor call failed; carries a fixed, client-safe message."""
    code = "billing_provider_error"


class BillingWebhookError(BillingProviderError):
    """Exception for webhook verification errors."""
    code = "billing_webhook_error"
    status_code = 400


def epoch_to_iso(value: Optional[int]) -> Optional[str]:
    """Processor timestamps are epoch seconds; the API speaks ISO-8601 UTC."""
    if not value:
        return None
    return datetime.fromtimestamp(value, timezone.utc).isoformat()
