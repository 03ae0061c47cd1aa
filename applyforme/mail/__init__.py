"""Billing email configuration, rendering and delivery."""

from .config import EmailConfig, load_email_config
from .messages import BillingEmail, BillingTemplate
from .providers import (
    DevLogProvider,
    EmailDeliveryError,
    EmailProvider,
    SMTPProvider,
    create_email_provider,
)
from .renderer import build_billing_email, render_email

__all__ = [
    "BillingEmail",
    "BillingTemplate",
    "DevLogProvider",
    "EmailConfig",
    "EmailDeliveryError",
    "EmailProvider",
    "SMTPProvider",
    "build_billing_email",
    "create_email_provider",
    "load_email_config",
    "render_email",
]
