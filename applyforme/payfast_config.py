"""PayFast gateway configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

SANDBOX_PROCESS_URL = "https://sandbox.payfast.co.za/eng/process"
LIVE_PROCESS_URL = "https://www.payfast.co.za/eng/process"
DEFAULT_API_URL = "https://api.payfast.co.za"


@dataclass(frozen=True)
class PayFastConfig:
    """Merchant credentials and endpoints used by the payment flows."""

    merchant_id: str
    merchant_key: str
    passphrase: Optional[str]
    sandbox: bool
    process_url: str
    api_url: str
    site_url: str
    premium_amount_cents: int
    renewals_enabled: bool
    renewal_interval_seconds: int


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _normalize_base_url(value: Optional[str]) -> str:
    base = (value or "").strip()
    if not base:
        return ""
    if not base.lower().startswith(("http://", "https://")):
        base = f"https://{base}"
    return base.rstrip("/")


def load_payfast_config(env: Optional[Mapping[str, str]] = None) -> PayFastConfig:
    """Load :class:`PayFastConfig` from environment variables.

    An empty or missing ``PAYFAST_PASSPHRASE`` disables the passphrase
    segment of the signature entirely.
    """

    env_mapping = os.environ if env is None else env

    sandbox = _to_bool(env_mapping.get("PAYFAST_SANDBOX"), default=True)
    default_process_url = SANDBOX_PROCESS_URL if sandbox else LIVE_PROCESS_URL
    passphrase = (env_mapping.get("PAYFAST_PASSPHRASE") or "").strip() or None

    site_url = _normalize_base_url(
        env_mapping.get("APP_SITE_URL") or env_mapping.get("NEXT_PUBLIC_SITE_URL")
    )

    return PayFastConfig(
        merchant_id=env_mapping.get("PAYFAST_MERCHANT_ID", ""),
        merchant_key=env_mapping.get("PAYFAST_MERCHANT_KEY", ""),
        passphrase=passphrase,
        sandbox=sandbox,
        process_url=env_mapping.get("PAYFAST_URL") or default_process_url,
        api_url=(env_mapping.get("PAYFAST_API_URL") or DEFAULT_API_URL).rstrip("/"),
        site_url=site_url,
        premium_amount_cents=max(0, _to_int(env_mapping.get("PAYFAST_PREMIUM_AMOUNT_CENTS"), default=49900)),
        renewals_enabled=_to_bool(env_mapping.get("PAYFAST_RENEWALS_ENABLED"), default=False),
        renewal_interval_seconds=max(60, _to_int(env_mapping.get("PAYFAST_RENEWAL_INTERVAL"), default=24 * 60 * 60)),
    )


__all__ = ["PayFastConfig", "load_payfast_config", "SANDBOX_PROCESS_URL", "LIVE_PROCESS_URL"]
