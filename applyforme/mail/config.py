"""Email configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from ..payfast_config import _to_bool, _to_int


@dataclass(frozen=True)
class EmailConfig:
    """Configuration for outbound billing email."""

    provider_name: str
    from_email: str
    smtp_host: str
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_use_tls: bool
    app_base_url: str


def load_email_config(env: Optional[Mapping[str, str]] = None) -> EmailConfig:
    """Load :class:`EmailConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    provider_name = (env_mapping.get("EMAIL_PROVIDER") or "dev").strip().lower() or "dev"
    app_base_url = env_mapping.get("APP_SITE_URL") or env_mapping.get("NEXT_PUBLIC_SITE_URL") or "http://localhost:3000"

    return EmailConfig(
        provider_name=provider_name,
        from_email=env_mapping.get("FROM_EMAIL", "billing@applyforme.co.za"),
        smtp_host=env_mapping.get("SMTP_HOST", "localhost"),
        smtp_port=_to_int(env_mapping.get("SMTP_PORT"), default=587),
        smtp_username=env_mapping.get("SMTP_USER") or None,
        smtp_password=env_mapping.get("SMTP_PASS") or None,
        smtp_use_tls=_to_bool(env_mapping.get("SMTP_USE_TLS"), default=True),
        app_base_url=app_base_url.rstrip("/"),
    )
