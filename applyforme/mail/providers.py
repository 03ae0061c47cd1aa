"""Delivery backends for billing notices."""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Dict, Optional

from .config import EmailConfig
from .messages import BillingEmail

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when a billing notice could not be handed to the mail server."""


class EmailProvider:
    name = "base"

    def __init__(self, *, from_email: str) -> None:
        self.from_email = from_email

    def send(self, email: BillingEmail) -> None:
        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"email_provider": self.name, "email_sender": self.from_email}


class DevLogProvider(EmailProvider):
    """Logs billing notices instead of delivering them."""

    name = "dev"

    def send(self, email: BillingEmail) -> None:
        logger.info(
            "Billing email %s for %s (not sent)",
            email.template.value,
            email.to,
            extra={
                "email_template": email.template.value,
                "email_subject": email.subject,
                "email_reference": email.reference,
            },
        )


class SMTPProvider(EmailProvider):
    name = "smtp"

    def __init__(
        self,
        *,
        from_email: str,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
    ) -> None:
        super().__init__(from_email=from_email)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def build_message(self, email: BillingEmail) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = email.to
        message["Subject"] = email.subject
        for header, value in email.headers().items():
            message[header] = value
        message.set_content(email.text_body)
        message.add_alternative(email.html_body, subtype="html")
        return message

    def send(self, email: BillingEmail) -> None:
        message = self.build_message(email)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as client:
                if self.use_tls:
                    client.starttls()
                if self.username and self.password:
                    client.login(self.username, self.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(
                f"Could not send {email.template.value} email to {email.to}: {exc}"
            ) from exc
        logger.info("Sent %s email to %s", email.template.value, email.to)


def create_email_provider(config: EmailConfig) -> EmailProvider:
    if config.provider_name == "smtp":
        return SMTPProvider(
            from_email=config.from_email,
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
        )
    return DevLogProvider(from_email=config.from_email)


__all__ = [
    "DevLogProvider",
    "EmailDeliveryError",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
]
