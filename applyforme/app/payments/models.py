"""Domain models for PayFast payments, subscriptions and credits."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

COMPLETE_STATUS = "COMPLETE"


class PaymentStatus(str, Enum):
    """Payment states reported by the gateway."""

    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"


class PaymentClassification(str, Enum):
    """What a validated notification asks the platform to do."""

    SUBSCRIPTION = "subscription"
    CREDITS = "credits"
    IGNORE = "ignore"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for recruiter subscriptions."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class AuditOutcome(str, Enum):
    """Result recorded alongside each audited notification."""

    PROCESSED = "processed"
    REJECTED = "rejected"
    FAILED = "failed"


class PayFastNotification(BaseModel):
    """Typed view over the trusted keys of a PayFast ITN payload.

    Numeric values are normalised to their string form so that the
    signature is computed over exactly what the gateway sent. Keys outside
    this model are ignored for processing but remain in the raw payload.
    """

    m_payment_id: Optional[str] = None
    pf_payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    item_name: Optional[str] = None
    item_description: Optional[str] = None
    amount_gross: Optional[str] = None
    amount_fee: Optional[str] = None
    amount_net: Optional[str] = None
    custom_str1: Optional[str] = None
    custom_str2: Optional[str] = None
    custom_str3: Optional[str] = None
    custom_str4: Optional[str] = None
    custom_str5: Optional[str] = None
    custom_int1: Optional[str] = None
    custom_int2: Optional[str] = None
    custom_int3: Optional[str] = None
    custom_int4: Optional[str] = None
    custom_int5: Optional[str] = None
    name_first: Optional[str] = None
    name_last: Optional[str] = None
    email_address: Optional[str] = None
    merchant_id: Optional[str] = None
    token: Optional[str] = None
    billing_date: Optional[str] = None
    signature: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValueError("boolean values are not accepted")
        if isinstance(value, float):
            raise ValueError("fractional numbers must be sent as strings")
        if isinstance(value, (int, Decimal)):
            return str(value)
        if isinstance(value, str):
            return value
        raise ValueError("expected a string or number")

    @property
    def user_id(self) -> str:
        """Auth user id round-tripped through ``custom_str1``."""
        return (self.custom_str1 or "").strip()

    @property
    def product_id(self) -> str:
        return (self.custom_str2 or "").strip()

    @property
    def credit_amount_raw(self) -> Optional[str]:
        return self.custom_int1

    @property
    def is_complete(self) -> bool:
        return self.payment_status == COMPLETE_STATUS


class Recruiter(BaseModel):
    """Billing tenant resolved from an auth user id."""

    id: str
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Subscription(BaseModel):
    """The single subscription row owned by a recruiter."""

    id: str
    recruiter_id: str
    plan_id: str
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    payfast_token: Optional[str] = None
    payfast_subscription_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class CreditBalance(BaseModel):
    recruiter_id: str
    credits: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class PaymentAuditEntry(BaseModel):
    """Write-once record of a notification and how it was handled."""

    pf_payment_id: Optional[str] = None
    m_payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    recruiter_id: Optional[str] = None
    product_id: Optional[str] = None
    amount_gross: Optional[str] = None
    outcome: AuditOutcome
    error: Optional[str] = None
    payload: Dict[str, object] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class WebhookResult(BaseModel):
    """Plain-text response returned to the gateway."""

    status_code: int
    message: str
    classification: Optional[PaymentClassification] = None
    recruiter_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class SubscriptionActivation(BaseModel):
    """Subscription state after an activation together with whether it was new."""

    subscription: Subscription
    created: bool

    model_config = ConfigDict(frozen=True)


class CheckoutRequest(BaseModel):
    """Signed PayFast form ready to be posted or used as a redirect."""

    product_id: str
    m_payment_id: str
    fields: Dict[str, str]
    redirect_url: str
    process_url: str

    model_config = ConfigDict(frozen=True)


class RenewalSummary(BaseModel):
    renewed: int = 0
    past_due: int = 0
    failures: int = 0

    model_config = ConfigDict(frozen=True)
