"""Core service reconciling PayFast payments with subscriptions and credits."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlencode

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError

from ...payfast_config import PayFastConfig
from .catalog import CREDITS_PRODUCT_PREFIX, PREMIUM_PRODUCT_ID, get_product
from .exceptions import (
    InvalidCreditAmountError,
    MalformedPayloadError,
    MissingCorrelationError,
    PaymentError,
    RecruiterNotFoundError,
    UnknownProductError,
)
from .models import (
    AuditOutcome,
    CheckoutRequest,
    PayFastNotification,
    PaymentAuditEntry,
    PaymentClassification,
    Recruiter,
    RenewalSummary,
    Subscription,
    SubscriptionActivation,
    WebhookResult,
)
from .signature import SignatureVerifier, sign_checkout_fields

logger = logging.getLogger("payments")

RENEWAL_ITEM_NAME = "ApplyForMe Premium Subscription Renewal"

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")


class PaymentRepository(Protocol):
    """Persistence operations required by the payment service."""

    def get_recruiter_by_user_id(self, user_id: str) -> Optional[Recruiter]:
        ...

    def get_recruiter(self, recruiter_id: str) -> Optional[Recruiter]:
        ...

    def ensure_active_subscription(
        self,
        *,
        recruiter_id: str,
        plan_id: str,
        period_start: datetime,
        period_end: datetime,
        payfast_token: Optional[str],
        payfast_subscription_id: Optional[str],
    ) -> Tuple[Subscription, bool]:
        """Create or update the recruiter's only subscription row.

        Returns the row and ``True`` when it did not exist before.
        """

    def add_job_credits(self, recruiter_id: str, credits: int) -> int:
        """Atomically add *credits* and return the new balance."""

    def get_subscription_for_recruiter(self, recruiter_id: str) -> Optional[Subscription]:
        ...

    def cancel_active_subscription(self, recruiter_id: str) -> Optional[Subscription]:
        ...

    def list_due_subscriptions(self, now: datetime) -> Sequence[Subscription]:
        ...

    def extend_subscription_period(self, subscription_id: str, *, period_end: datetime) -> Optional[Subscription]:
        ...

    def mark_subscription_past_due(self, subscription_id: str) -> Optional[Subscription]:
        ...


class PaymentAuditLog(Protocol):
    """Append-only store of the notifications the gateway sent."""

    def append(self, entry: PaymentAuditEntry) -> None:
        ...


class PaymentGateway(Protocol):
    """Outbound calls to the payment gateway."""

    def charge_token(self, token: str, *, amount_cents: int, item_name: str) -> bool:
        """Charge a stored card token; ``True`` when the charge succeeded."""


class PaymentNotifier(Protocol):
    """Tells recruiters about changes to their billing state."""

    def notify_subscription_confirmed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        ...

    def notify_subscription_renewed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        ...

    def notify_credits_added(self, recruiter: Recruiter, credits: int, balance: int) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int = 1) -> datetime:
    """Calendar-month addition; day overflow is clamped to the month end."""
    return value + relativedelta(months=months)


def parse_notification(payload: object) -> PayFastNotification:
    """Validate a decoded body into a :class:`PayFastNotification`."""

    if not isinstance(payload, Mapping):
        raise MalformedPayloadError("expected a flat object of fields")
    for key, value in payload.items():
        if not isinstance(key, str):
            raise MalformedPayloadError("field names must be strings")
        if isinstance(value, (dict, list, tuple, set)):
            raise MalformedPayloadError(f"field {key!r} must be a string or number")
    try:
        return PayFastNotification.model_validate(dict(payload))
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise MalformedPayloadError(f"field {location!r} is invalid") from exc


def classify_notification(notification: PayFastNotification) -> PaymentClassification:
    """Decide what a signature-checked notification asks for."""

    if not notification.is_complete:
        return PaymentClassification.IGNORE

    if not notification.user_id:
        raise MissingCorrelationError("User ID not found in webhook payload")

    product_id = notification.product_id
    if product_id == PREMIUM_PRODUCT_ID:
        return PaymentClassification.SUBSCRIPTION
    if product_id.startswith(CREDITS_PRODUCT_PREFIX):
        return PaymentClassification.CREDITS
    raise UnknownProductError(f"Unknown product: {product_id or '<missing>'}")


def parse_credit_amount(raw: Optional[str]) -> int:
    if raw is None or not raw.strip():
        raise InvalidCreditAmountError("Credits amount missing from webhook payload")
    text = raw.strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        raise InvalidCreditAmountError(f"Invalid credits amount: {text!r}")
    amount = int(text)
    if amount <= 0:
        raise InvalidCreditAmountError(f"Invalid credits amount: {amount}")
    return amount


@dataclass(slots=True)
class PaymentService:
    """Coordinates PayFast notifications, checkout and renewals."""

    repository: PaymentRepository
    verifier: SignatureVerifier
    audit_log: PaymentAuditLog
    notifier: PaymentNotifier
    gateway: Optional[PaymentGateway] = None
    config: Optional[PayFastConfig] = None
    clock: Callable[[], datetime] = field(default=_utcnow)

    def _now(self) -> datetime:
        return self.clock()

    def handle_notification(self, payload: object) -> WebhookResult:
        """Authenticate, classify and apply a single gateway notification."""

        try:
            notification = parse_notification(payload)
        except MalformedPayloadError as exc:
            logger.warning("Rejected malformed PayFast payload: %s", exc)
            return WebhookResult(status_code=400, message=f"Invalid payload: {exc}")

        if not self.verifier.verify(notification):
            return WebhookResult(status_code=400, message="Invalid PayFast signature")

        raw_payload = dict(payload)  # type: ignore[arg-type]

        try:
            classification = classify_notification(notification)
        except PaymentError as exc:
            logger.warning(
                "Rejected PayFast notification %s: %s", notification.pf_payment_id, exc
            )
            self._audit(notification, raw_payload, None, AuditOutcome.REJECTED, str(exc))
            return WebhookResult(status_code=exc.status_code, message=f"Webhook Error: {exc}")

        if classification == PaymentClassification.IGNORE:
            logger.info(
                "Ignoring PayFast notification %s with status %s",
                notification.pf_payment_id,
                notification.payment_status,
            )
            return WebhookResult(
                status_code=200,
                message="Ignoring non-complete payment",
                classification=classification,
            )

        recruiter_id: Optional[str] = None
        outcome = AuditOutcome.FAILED
        error: Optional[str] = None
        try:
            recruiter = self.resolve_recruiter(notification.user_id)
            recruiter_id = recruiter.id
            if classification == PaymentClassification.SUBSCRIPTION:
                self.activate_subscription(recruiter, notification)
            else:
                self.add_credits(recruiter, notification.credit_amount_raw)
        except PaymentError as exc:
            outcome = AuditOutcome.REJECTED
            error = str(exc)
            logger.warning(
                "Rejected PayFast notification %s: %s", notification.pf_payment_id, exc
            )
            return WebhookResult(
                status_code=exc.status_code,
                message=f"Webhook Error: {exc}",
                classification=classification,
                recruiter_id=recruiter_id,
            )
        except Exception as exc:
            error = str(exc)
            logger.exception(
                "Error processing PayFast notification %s", notification.pf_payment_id
            )
            return WebhookResult(
                status_code=500,
                message=f"Webhook Error: {exc}",
                classification=classification,
                recruiter_id=recruiter_id,
            )
        else:
            outcome = AuditOutcome.PROCESSED
            return WebhookResult(
                status_code=200,
                message="Webhook processed successfully",
                classification=classification,
                recruiter_id=recruiter_id,
            )
        finally:
            self._audit(notification, raw_payload, recruiter_id, outcome, error)

    def resolve_recruiter(self, user_id: str) -> Recruiter:
        recruiter = self.repository.get_recruiter_by_user_id(user_id)
        if recruiter is None:
            raise RecruiterNotFoundError(f"Recruiter not found for user_id: {user_id}")
        return recruiter

    def activate_subscription(
        self, recruiter: Recruiter, notification: PayFastNotification
    ) -> SubscriptionActivation:
        """Make the recruiter's subscription active for one month from now."""

        period_start = self._now()
        period_end = add_months(period_start)
        subscription, created = self.repository.ensure_active_subscription(
            recruiter_id=recruiter.id,
            plan_id=PREMIUM_PRODUCT_ID,
            period_start=period_start,
            period_end=period_end,
            payfast_token=notification.token or "",
            payfast_subscription_id=notification.pf_payment_id or "",
        )
        logger.info(
            "%s premium subscription for recruiter %s until %s",
            "Created" if created else "Renewed",
            recruiter.id,
            subscription.current_period_end,
        )
        if created:
            self._notify("subscription_confirmed", self.notifier.notify_subscription_confirmed, recruiter, subscription)
        else:
            self._notify("subscription_renewed", self.notifier.notify_subscription_renewed, recruiter, subscription)
        return SubscriptionActivation(subscription=subscription, created=created)

    def add_credits(self, recruiter: Recruiter, raw_amount: Optional[str]) -> int:
        """Add purchased job credits; returns the new balance."""

        credits = parse_credit_amount(raw_amount)
        balance = self.repository.add_job_credits(recruiter.id, credits)
        logger.info("Added %s credits for recruiter %s (balance=%s)", credits, recruiter.id, balance)
        self._notify("credits_added", self.notifier.notify_credits_added, recruiter, credits, balance)
        return balance

    def create_checkout(
        self,
        *,
        user_id: str,
        product_id: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> CheckoutRequest:
        """Build the signed PayFast form for a product purchase."""

        config = self._require_config()
        if not user_id:
            raise ValueError("user_id is required")
        product = get_product(product_id)
        if product is None:
            raise UnknownProductError(f"Unknown product: {product_id}")
        if not config.site_url.startswith("https://"):
            raise ValueError("Site URL for PayFast must be an absolute https URL")

        m_payment_id = f"TXN-{int(self._now().timestamp() * 1000)}"
        billing_url = f"{config.site_url}/recruiter/dashboard/billing"

        fields: Dict[str, str] = {
            "merchant_id": config.merchant_id,
            "merchant_key": config.merchant_key,
            "return_url": f"{billing_url}?status=success",
            "cancel_url": f"{billing_url}?status=canceled",
            "notify_url": f"{config.site_url}/api/payfast/webhook",
        }
        if full_name:
            first, _, last = full_name.strip().partition(" ")
            fields["name_first"] = first
            if last:
                fields["name_last"] = last.strip()
        if email:
            fields["email_address"] = email
        fields.update(
            {
                "m_payment_id": m_payment_id,
                "amount": product.amount,
                "item_name": product.display_name,
                "item_description": product.description,
                "custom_int1": str(product.credits),
                "custom_str1": user_id,
                "custom_str2": product.product_id,
            }
        )
        if product.recurring:
            fields.update({"subscription_type": "1", "frequency": "3", "cycles": "0"})

        fields["signature"] = sign_checkout_fields(fields, config.passphrase)
        redirect_url = f"{config.process_url}?{urlencode(fields)}"
        return CheckoutRequest(
            product_id=product.product_id,
            m_payment_id=m_payment_id,
            fields=fields,
            redirect_url=redirect_url,
            process_url=config.process_url,
        )

    def cancel_subscription(self, user_id: str) -> Subscription:
        recruiter = self.resolve_recruiter(user_id)
        cancelled = self.repository.cancel_active_subscription(recruiter.id)
        if cancelled is None:
            raise LookupError("No active subscription to cancel")
        logger.info("Cancelled subscription %s for recruiter %s", cancelled.id, recruiter.id)
        return cancelled

    def get_subscription(self, user_id: str) -> Optional[Subscription]:
        recruiter = self.resolve_recruiter(user_id)
        return self.repository.get_subscription_for_recruiter(recruiter.id)

    def renew_due_subscriptions(self, now: Optional[datetime] = None) -> RenewalSummary:
        """Charge stored tokens for subscriptions whose period has ended."""

        if self.gateway is None:
            raise RuntimeError("A payment gateway is required to renew subscriptions")
        config = self._require_config()
        current_time = now or self._now()

        renewed = past_due = failures = 0
        for subscription in self.repository.list_due_subscriptions(current_time):
            try:
                charged = bool(subscription.payfast_token) and self.gateway.charge_token(
                    subscription.payfast_token or "",
                    amount_cents=config.premium_amount_cents,
                    item_name=RENEWAL_ITEM_NAME,
                )
                if charged:
                    period_end = add_months(subscription.current_period_end or current_time)
                    updated = self.repository.extend_subscription_period(
                        subscription.id, period_end=period_end
                    )
                    renewed += 1
                    recruiter = self.repository.get_recruiter(subscription.recruiter_id)
                    if updated is not None and recruiter is not None:
                        self._notify(
                            "subscription_renewed",
                            self.notifier.notify_subscription_renewed,
                            recruiter,
                            updated,
                        )
                else:
                    self.repository.mark_subscription_past_due(subscription.id)
                    past_due += 1
                    logger.warning(
                        "Renewal charge failed for subscription %s; marked past due",
                        subscription.id,
                    )
            except Exception:
                failures += 1
                logger.exception("Error renewing subscription %s", subscription.id)

        return RenewalSummary(renewed=renewed, past_due=past_due, failures=failures)

    def _require_config(self) -> PayFastConfig:
        if self.config is None:
            raise RuntimeError("PayFast configuration has not been provided")
        return self.config

    def _audit(
        self,
        notification: PayFastNotification,
        raw_payload: Dict[str, object],
        recruiter_id: Optional[str],
        outcome: AuditOutcome,
        error: Optional[str],
    ) -> None:
        entry = PaymentAuditEntry(
            pf_payment_id=notification.pf_payment_id,
            m_payment_id=notification.m_payment_id,
            payment_status=notification.payment_status,
            recruiter_id=recruiter_id,
            product_id=notification.product_id or None,
            amount_gross=notification.amount_gross,
            outcome=outcome,
            error=error,
            payload=raw_payload,
            created_at=self._now(),
        )
        try:
            self.audit_log.append(entry)
        except Exception:
            logger.exception(
                "Failed to write payment audit entry for %s", notification.pf_payment_id
            )

    def _notify(self, kind: str, callback: Callable[..., None], *args: object) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Payment notification %s failed", kind)


__all__ = [
    "PaymentAuditLog",
    "PaymentGateway",
    "PaymentNotifier",
    "PaymentRepository",
    "PaymentService",
    "add_months",
    "classify_notification",
    "parse_credit_amount",
    "parse_notification",
]
