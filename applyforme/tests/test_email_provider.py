import logging
import smtplib
from datetime import datetime, timezone

import pytest

from applyforme.app.payments import Recruiter, Subscription, SubscriptionStatus
from applyforme.app.services import payments as payment_services
from applyforme.mail import (
    BillingEmail,
    BillingTemplate,
    DevLogProvider,
    EmailDeliveryError,
    EmailProvider,
    SMTPProvider,
    build_billing_email,
    create_email_provider,
    load_email_config,
    render_email,
)


class _RecordingProvider(EmailProvider):
    name = "recording"

    def __init__(self) -> None:
        super().__init__(from_email="billing@applyforme.test")
        self.sent = []

    def send(self, email: BillingEmail) -> None:
        self.sent.append(email)


def _subscription() -> Subscription:
    return Subscription(
        id="sub-1",
        recruiter_id="rec-1",
        plan_id="premium",
        status=SubscriptionStatus.ACTIVE,
        current_period_start=datetime(2024, 1, 31, tzinfo=timezone.utc),
        current_period_end=datetime(2024, 2, 29, tzinfo=timezone.utc),
        payfast_subscription_id="1089250",
    )


def test_default_provider_is_dev_log():
    config = load_email_config(env={})
    provider = create_email_provider(config)

    assert isinstance(provider, DevLogProvider)
    assert provider.from_email == "billing@applyforme.co.za"
    assert config.app_base_url == "http://localhost:3000"


def test_smtp_provider_configuration():
    config = load_email_config(
        env={
            "EMAIL_PROVIDER": "SMTP",
            "FROM_EMAIL": "billing@applyforme.test",
            "SMTP_HOST": "smtp.applyforme.test",
            "SMTP_PORT": "2525",
            "SMTP_USER": "mailer",
            "SMTP_PASS": "secret",
            "SMTP_USE_TLS": "false",
        }
    )
    provider = create_email_provider(config)

    assert isinstance(provider, SMTPProvider)
    assert provider.host == "smtp.applyforme.test"
    assert provider.port == 2525
    assert provider.username == "mailer"
    assert provider.use_tls is False
    assert provider.describe() == {"email_provider": "smtp", "email_sender": "billing@applyforme.test"}


def test_invalid_smtp_port_raises():
    with pytest.raises(ValueError):
        load_email_config(env={"SMTP_PORT": "not-a-port"})


def _smtp_provider() -> SMTPProvider:
    return SMTPProvider(
        from_email="billing@applyforme.test",
        host="localhost",
        port=25,
        username=None,
        password=None,
        use_tls=False,
    )


def _credits_email() -> BillingEmail:
    return build_billing_email(
        BillingTemplate.CREDITS_ADDED,
        to="a@example.com",
        context={"recipient_name": "Sipho", "credits": 10, "balance": 13, "jobs_url": "https://x.test/jobs"},
        reference="TXN-1",
    )


def test_smtp_message_carries_template_headers_and_both_bodies():
    message = _smtp_provider().build_message(_credits_email())

    assert message["To"] == "a@example.com"
    assert message["Subject"] == "10 job credits added to your ApplyForMe account"
    assert message["X-ApplyForMe-Template"] == "credits_added"
    assert message["X-ApplyForMe-Reference"] == "TXN-1"
    assert [part.get_content_type() for part in message.iter_parts()] == ["text/plain", "text/html"]


def test_smtp_failure_raises_delivery_error(monkeypatch):
    class _RefusingSMTP:
        def __init__(self, host, port, timeout=None):
            raise smtplib.SMTPConnectError(421, b"service not available")

    monkeypatch.setattr(smtplib, "SMTP", _RefusingSMTP)

    with pytest.raises(EmailDeliveryError, match="credits_added email to a@example.com"):
        _smtp_provider().send(_credits_email())


def test_dev_provider_logs_template_without_sending(caplog):
    provider = DevLogProvider(from_email="billing@applyforme.test")

    with caplog.at_level(logging.INFO, logger="applyforme.mail.providers"):
        provider.send(_credits_email())

    record = caplog.records[-1]
    assert record.email_template == "credits_added"
    assert record.email_reference == "TXN-1"


def test_render_email_fills_placeholders_and_escapes_html():
    subject, text_body, html_body = render_email(
        "credits_added",
        {"recipient_name": "Sipho <Admin>", "credits": 10, "balance": 13, "jobs_url": "https://x.test/jobs"},
    )

    assert subject == "10 job credits added to your ApplyForMe account"
    assert "Hi Sipho <Admin>," in text_body
    assert "Sipho &lt;Admin&gt;" in html_body
    assert "{{" not in html_body


def test_email_notifier_sends_subscription_confirmation():
    provider = _RecordingProvider()
    notifier = payment_services.EmailPaymentNotifier(provider, app_base_url="https://applyforme.test/")
    recruiter = Recruiter(id="rec-1", user_id="user-1", full_name="Thandi", email="thandi@example.com")

    notifier.notify_subscription_confirmed(recruiter, _subscription())

    sent = provider.sent[0]
    assert sent.template is BillingTemplate.SUBSCRIPTION_CONFIRMATION
    assert sent.to == "thandi@example.com"
    assert sent.reference == "sub-1"
    assert sent.subject == "Your ApplyForMe Premium Plan is active"
    assert "29 February 2024" in sent.text_body
    assert "1089250" in sent.text_body
    assert "https://applyforme.test/recruiter/dashboard/billing" in sent.html_body


def test_email_notifier_skips_recruiter_without_email():
    provider = _RecordingProvider()
    notifier = payment_services.EmailPaymentNotifier(provider, app_base_url="https://applyforme.test")

    notifier.notify_credits_added(Recruiter(id="rec-1", user_id="user-1"), 5, 5)

    assert provider.sent == []


def test_build_payment_service_uses_logging_notifier_for_dev_provider(payfast_config):
    service = payment_services.build_payment_service(payfast_config, email_config=load_email_config(env={}))

    assert isinstance(service.notifier, payment_services.LoggingPaymentNotifier)
    assert service.verifier.uses_passphrase
    assert service.gateway.merchant_id == "10000100"
    assert service.config is payfast_config


def test_build_payment_service_uses_email_notifier_for_smtp(payfast_config):
    email_config = load_email_config(env={"EMAIL_PROVIDER": "smtp", "APP_SITE_URL": "https://applyforme.test"})

    service = payment_services.build_payment_service(payfast_config, email_config=email_config)

    assert isinstance(service.notifier, payment_services.EmailPaymentNotifier)
    assert service.notifier.app_base_url == "https://applyforme.test"
