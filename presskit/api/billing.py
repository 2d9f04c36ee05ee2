"""
Billing API routes.

- GET/POST/PUT/DELETE /api/v1/billing/subscription
- GET/POST /api/v1/billing/payment-methods, DELETE /payment-methods/{id}
- POST /api/v1/billing/webhook: Stripe events, authenticated by signature

Every route answers 503 when STRIPE_SECRET_KEY is not configured.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from presskit.core.auth import AuthContext, get_auth_context
from presskit.core.responses import created, success
from presskit.dependencies import Services, get_services
from presskit.models.billing import PaymentMethodCreate, SubscriptionCreate, SubscriptionUpdate

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/subscription")
def get_subscription(auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.billing.get_subscription(auth.user))


@router.post("/subscription")
def create_subscription(
    body: SubscriptionCreate,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    subscription = services.billing.subscribe(auth.user, body.plan, body.payment_method_id)
    return created(subscription, "Subscription created successfully")


@router.put("/subscription")
def update_subscription(
    body: SubscriptionUpdate,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    return success(services.billing.change_plan(auth.user, body.plan), "Subscription updated successfully")


@router.delete("/subscription")
def cancel_subscription(auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.billing.cancel(auth.user), "Subscription canceled successfully")


@router.get("/payment-methods")
def list_payment_methods(auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.billing.list_payment_methods(auth.user))


@router.post("/payment-methods")
def add_payment_method(
    body: PaymentMethodCreate,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    return created(services.billing.add_payment_method(auth.user, body.payment_method_id), "Payment method added")


@router.delete("/payment-methods/{payment_method_id}")
def remove_payment_method(
    payment_method_id: str,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    services.billing.remove_payment_method(auth.user, payment_method_id)
    return success(message="Payment method removed")


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    services: Services = Depends(get_services),
):
    """
    Handle Stripe webhook events.

    The raw body is required for signature verification. Duplicate
    deliveries are acknowledged without being reprocessed.
    """
    payload = await request.body()
    return await run_in_threadpool(services.billing.handle_webhook, payload, stripe_signature)
