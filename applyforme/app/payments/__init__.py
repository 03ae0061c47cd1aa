"""PayFast payments domain: signatures, subscriptions, credits and audit."""

from .catalog import PRODUCT_CATALOG, ProductDefinition, get_product
from .exceptions import (
    InvalidCreditAmountError,
    InvalidSignatureError,
    MalformedPayloadError,
    MissingCorrelationError,
    PaymentError,
    RecruiterNotFoundError,
    UnknownProductError,
)
from .models import (
    AuditOutcome,
    CheckoutRequest,
    CreditBalance,
    PayFastNotification,
    PaymentAuditEntry,
    PaymentClassification,
    PaymentStatus,
    Recruiter,
    RenewalSummary,
    Subscription,
    SubscriptionActivation,
    SubscriptionStatus,
    WebhookResult,
)
from .service import (
    PaymentAuditLog,
    PaymentGateway,
    PaymentNotifier,
    PaymentRepository,
    PaymentService,
    add_months,
    classify_notification,
    parse_credit_amount,
    parse_notification,
)
from .signature import SIGNED_FIELDS, SignatureVerifier, compute_signature, sign_checkout_fields

__all__ = [
    "AuditOutcome",
    "CheckoutRequest",
    "CreditBalance",
    "InvalidCreditAmountError",
    "InvalidSignatureError",
    "MalformedPayloadError",
    "MissingCorrelationError",
    "PRODUCT_CATALOG",
    "PayFastNotification",
    "PaymentAuditEntry",
    "PaymentAuditLog",
    "PaymentClassification",
    "PaymentError",
    "PaymentGateway",
    "PaymentNotifier",
    "PaymentRepository",
    "PaymentService",
    "PaymentStatus",
    "ProductDefinition",
    "Recruiter",
    "RecruiterNotFoundError",
    "RenewalSummary",
    "SIGNED_FIELDS",
    "SignatureVerifier",
    "Subscription",
    "SubscriptionActivation",
    "SubscriptionStatus",
    "UnknownProductError",
    "WebhookResult",
    "add_months",
    "classify_notification",
    "compute_signature",
    "get_product",
    "parse_credit_amount",
    "parse_notification",
    "sign_checkout_fields",
]
