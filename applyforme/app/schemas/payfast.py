"""API schemas for PayFast endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import CheckoutRequest, Subscription


class CheckoutSessionRequest(BaseModel):
    product_id: str = Field(alias="productId", min_length=1)
    email: Optional[str] = None
    full_name: Optional[str] = Field(alias="fullName", default=None)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    m_payment_id: str = Field(alias="mPaymentId")
    process_url: str = Field(alias="processUrl")
    redirect_url: str = Field(alias="redirectUrl")
    fields: Dict[str, str]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, checkout: CheckoutRequest) -> "CheckoutSessionResponse":
        return cls(
            m_payment_id=checkout.m_payment_id,
            process_url=checkout.process_url,
            redirect_url=checkout.redirect_url,
            fields=checkout.fields,
        )


class SubscriptionResponse(BaseModel):
    subscription: Optional[Subscription] = None

    model_config = ConfigDict(populate_by_name=True)


class CancelSubscriptionResponse(BaseModel):
    success: bool = True
    cancelled_at: datetime = Field(alias="cancelledAt")

    model_config = ConfigDict(populate_by_name=True)
