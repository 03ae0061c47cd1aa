"""Shared fakes and fixtures for the payment tests."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from applyforme.app.payments import (
    PaymentAuditEntry,
    PaymentAuditLog,
    PaymentGateway,
    PaymentNotifier,
    PaymentRepository,
    PaymentService,
    Recruiter,
    SignatureVerifier,
    Subscription,
    SubscriptionStatus,
    compute_signature,
)
from applyforme.payfast_config import load_payfast_config

PASSPHRASE = "jt7NOE43FZPn"
FIXED_NOW = datetime(2024, 1, 31, 10, 30, tzinfo=timezone.utc)


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self) -> None:
        self.recruiters: Dict[str, Recruiter] = {}
        self.subscriptions: Dict[str, Subscription] = {}
        self.credits: Dict[str, int] = {}
        self.writes = 0
        self._lock = Lock()
        self._next_id = 1

    def add_recruiter(self, recruiter_id: str, user_id: str, *, email: Optional[str] = None) -> Recruiter:
        recruiter = Recruiter(id=recruiter_id, user_id=user_id, full_name="Thandi Recruiter", email=email)
        self.recruiters[recruiter_id] = recruiter
        return recruiter

    def get_recruiter_by_user_id(self, user_id: str) -> Optional[Recruiter]:
        for recruiter in self.recruiters.values():
            if recruiter.user_id == user_id:
                return recruiter
        return None

    def get_recruiter(self, recruiter_id: str) -> Optional[Recruiter]:
        return self.recruiters.get(recruiter_id)

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
        with self._lock:
            self.writes += 1
            existing = self.subscriptions.get(recruiter_id)
            values = {
                "plan_id": plan_id,
                "status": SubscriptionStatus.ACTIVE,
                "current_period_start": period_start,
                "current_period_end": period_end,
                "payfast_token": payfast_token,
                "payfast_subscription_id": payfast_subscription_id,
                "updated_at": period_start,
            }
            if existing is None:
                subscription = Subscription(
                    id=f"sub-{self._next_id}",
                    recruiter_id=recruiter_id,
                    created_at=period_start,
                    **values,
                )
                self._next_id += 1
            else:
                subscription = existing.model_copy(update=values)
            self.subscriptions[recruiter_id] = subscription
            return subscription, existing is None

    def add_job_credits(self, recruiter_id: str, credits: int) -> int:
        with self._lock:
            self.writes += 1
            self.credits[recruiter_id] = self.credits.get(recruiter_id, 0) + credits
            return self.credits[recruiter_id]

    def get_subscription_for_recruiter(self, recruiter_id: str) -> Optional[Subscription]:
        return self.subscriptions.get(recruiter_id)

    def _update(self, subscription_id: str, **values) -> Optional[Subscription]:
        for recruiter_id, subscription in self.subscriptions.items():
            if subscription.id == subscription_id:
                self.writes += 1
                updated = subscription.model_copy(update=values)
                self.subscriptions[recruiter_id] = updated
                return updated
        return None

    def cancel_active_subscription(self, recruiter_id: str) -> Optional[Subscription]:
        subscription = self.subscriptions.get(recruiter_id)
        if subscription is None or not subscription.is_active:
            return None
        return self._update(subscription.id, status=SubscriptionStatus.CANCELLED)

    def list_due_subscriptions(self, now: datetime) -> Sequence[Subscription]:
        return [
            subscription
            for subscription in self.subscriptions.values()
            if subscription.is_active
            and subscription.current_period_end is not None
            and subscription.current_period_end < now
        ]

    def extend_subscription_period(self, subscription_id: str, *, period_end: datetime) -> Optional[Subscription]:
        return self._update(subscription_id, current_period_end=period_end, status=SubscriptionStatus.ACTIVE)

    def mark_subscription_past_due(self, subscription_id: str) -> Optional[Subscription]:
        return self._update(subscription_id, status=SubscriptionStatus.PAST_DUE)


class FakeAuditLog(PaymentAuditLog):
    def __init__(self) -> None:
        self.entries: List[PaymentAuditEntry] = []
        self.error: Optional[Exception] = None

    def append(self, entry: PaymentAuditEntry) -> None:
        if self.error is not None:
            raise self.error
        self.entries.append(entry)


class FakeNotifier(PaymentNotifier):
    def __init__(self) -> None:
        self.confirmed: List[Tuple[Recruiter, Subscription]] = []
        self.renewed: List[Tuple[Recruiter, Subscription]] = []
        self.credits: List[Tuple[Recruiter, int, int]] = []

    def notify_subscription_confirmed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        self.confirmed.append((recruiter, subscription))

    def notify_subscription_renewed(self, recruiter: Recruiter, subscription: Subscription) -> None:
        self.renewed.append((recruiter, subscription))

    def notify_credits_added(self, recruiter: Recruiter, credits: int, balance: int) -> None:
        self.credits.append((recruiter, credits, balance))


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.charges: List[Tuple[str, int, str]] = []
        self.declined_tokens: set[str] = set()
        self.broken_tokens: set[str] = set()

    def charge_token(self, token: str, *, amount_cents: int, item_name: str) -> bool:
        if token in self.broken_tokens:
            raise ConnectionError("gateway unreachable")
        self.charges.append((token, amount_cents, item_name))
        return token not in self.declined_tokens


@pytest.fixture
def payfast_config():
    return load_payfast_config(
        env={
            "PAYFAST_MERCHANT_ID": "10000100",
            "PAYFAST_MERCHANT_KEY": "46f0cd694581a",
            "PAYFAST_PASSPHRASE": PASSPHRASE,
            "PAYFAST_SANDBOX": "true",
            "APP_SITE_URL": "https://applyforme.test",
        }
    )


@pytest.fixture
def payment_components(payfast_config):
    repository = InMemoryPaymentRepository()
    audit_log = FakeAuditLog()
    notifier = FakeNotifier()
    gateway = FakeGateway()
    service = PaymentService(
        repository=repository,
        verifier=SignatureVerifier(PASSPHRASE),
        audit_log=audit_log,
        notifier=notifier,
        gateway=gateway,
        config=payfast_config,
        clock=lambda: FIXED_NOW,
    )
    return repository, audit_log, notifier, gateway, service


@pytest.fixture
def make_payload() -> Callable[..., Dict[str, object]]:
    """Build a signed ITN payload; pass ``signature=`` to override it."""

    def _make(**overrides: object) -> Dict[str, object]:
        signature = overrides.pop("signature", None)
        payload: Dict[str, object] = {
            "m_payment_id": "TXN-1706700000000",
            "pf_payment_id": "1089250",
            "payment_status": "COMPLETE",
            "item_name": "Premium Plan",
            "item_description": "Monthly subscription",
            "amount_gross": "499.00",
            "amount_fee": "-11.49",
            "amount_net": "487.51",
            "custom_str1": "user-1",
            "custom_str2": "premium",
            "custom_int1": "0",
            "name_first": "Thandi",
            "email_address": "thandi@example.com",
            "merchant_id": "10000100",
            "token": "dc0521d3-55fe-269b-fa00-b647310d760f",
        }
        payload.update(overrides)
        payload = {key: value for key, value in payload.items() if value is not None}
        payload["signature"] = signature if signature is not None else compute_signature(payload, PASSPHRASE)
        return payload

    return _make
