"""
presskit/models/billing.py
Subscription and payment-method payloads.
"""

from typing import Literal

from pydantic import Field

from presskit.models.base import ApiModel

Plan = Literal["basic", "pro", "enterprise"]


class SubscriptionCreate(ApiModel):
    plan: Plan
    payment_method_id: str = Field(min_length=1)


class SubscriptionUpdate(ApiModel):
    plan: Plan


class PaymentMethodCreate(ApiModel):
    payment_method_id: str = Field(min_length=1)
