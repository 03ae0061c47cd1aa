"""Application wiring for the payment service."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ...mail import (
    BillingTemplate,
    EmailConfig,
    EmailProvider,
    build_billing_email,
    create_email_provider,
    load_email_config,
)
from ...payfast_config import PayFastConfig, load_payfast_config
from ..payments import (
    PaymentNotifier,
    PaymentService,
    Recruiter,
    SignatureVerifier,
    Subscription,
)
from ..payments.catalog import get_product
from ..payments.gateway import PayFastGateway
from ..payments.repository import PostgresPaymentAuditLog, PostgresPaymentRepository


logger = logging.getLogger("payments")


def _plan_name(subscription: Subscription) -> str:
    product = get_product(subscription.plan_id)
    return product.display_name if product else subscription.plan_id


def _format_date(subscription: Subscription) -> str:
    end = subscription.current_period_end
    return end.strftime("%d %B %Y") if end else ""


class LoggingPaymentNotifier(PaymentNotifier):
    """Notifier that records billing notifications to the application logger."""

    def notify_subscription_confirmed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        logger.info(
            "Subscription confirmed recruiter=%s plan=%s period_end=%s",
            recruiter.id,
            subscription.plan_id,
            subscription.current_period_end,
        )

    def notify_subscription_renewed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        logger.info(
            "Subscription renewed recruiter=%s plan=%s period_end=%s",
            recruiter.id,
            subscription.plan_id,
            subscription.current_period_end,
        )

    def notify_credits_added(self, recruiter: Recruiter, credits: int, balance: int) -> None:
        logger.info("Credits added recruiter=%s credits=%s balance=%s", recruiter.id, credits, balance)


class EmailPaymentNotifier(PaymentNotifier):
    """Sends billing emails to the recruiter's address on file."""

    def __init__(self, provider: EmailProvider, *, app_base_url: str) -> None:
        self.provider = provider
        self.app_base_url = app_base_url.rstrip("/")

    def _send(
        self,
        recruiter: Recruiter,
        template: BillingTemplate,
        context: dict,
        *,
        reference: Optional[str] = None,
    ) -> None:
        if not recruiter.email:
            logger.warning("Recruiter %s has no email; skipping %s", recruiter.id, template.value)
            return
        email = build_billing_email(
            template,
            to=recruiter.email,
            context={"recipient_name": recruiter.full_name or "there", **context},
            reference=reference,
        )
        self.provider.send(email)

    def _subscription_context(self, subscription: Subscription) -> dict:
        return {
            "plan_name": _plan_name(subscription),
            "period_end": _format_date(subscription),
            "reference": subscription.payfast_subscription_id or subscription.id,
            "billing_url": f"{self.app_base_url}/recruiter/dashboard/billing",
        }

    def notify_subscription_confirmed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        self._send(
            recruiter,
            BillingTemplate.SUBSCRIPTION_CONFIRMATION,
            self._subscription_context(subscription),
            reference=subscription.id,
        )

    def notify_subscription_renewed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        self._send(
            recruiter,
            BillingTemplate.SUBSCRIPTION_RENEWAL,
            self._subscription_context(subscription),
            reference=subscription.id,
        )

    def notify_credits_added(self, recruiter: Recruiter, credits: int, balance: int) -> None:
        self._send(
            recruiter,
            BillingTemplate.CREDITS_ADDED,
            {
                "credits": credits,
                "balance": balance,
                "jobs_url": f"{self.app_base_url}/recruiter/jobs/new",
            },
        )


def build_payment_service(
    config: PayFastConfig,
    *,
    email_config: Optional[EmailConfig] = None,
) -> PaymentService:
    email_config = email_config or load_email_config()
    provider = create_email_provider(email_config)
    if provider.name == "dev":
        notifier: PaymentNotifier = LoggingPaymentNotifier()
    else:
        notifier = EmailPaymentNotifier(provider, app_base_url=email_config.app_base_url)

    gateway = PayFastGateway(
        merchant_id=config.merchant_id,
        passphrase=config.passphrase,
        api_url=config.api_url,
        sandbox=config.sandbox,
    )
    return PaymentService(
        repository=PostgresPaymentRepository(),
        verifier=SignatureVerifier(config.passphrase),
        audit_log=PostgresPaymentAuditLog(),
        notifier=notifier,
        gateway=gateway,
        config=config,
    )


@lru_cache(maxsize=1)
def get_payment_service() -> PaymentService:
    return build_payment_service(load_payfast_config())


__all__ = [
    "EmailPaymentNotifier",
    "LoggingPaymentNotifier",
    "build_payment_service",
    "get_payment_service",
]
