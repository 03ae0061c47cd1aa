"""Typed billing messages handed to the email providers."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class BillingTemplate(str, Enum):
    SUBSCRIPTION_CONFIRMATION = "subscription_confirmation"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"
    CREDITS_ADDED = "credits_added"


@dataclass(frozen=True)
class BillingEmail:
    """A rendered billing notice addressed to one recruiter."""

    template: BillingTemplate
    to: str
    subject: str
    text_body: str
    html_body: str
    reference: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        headers = {"X-ApplyForMe-Template": self.template.value}
        if self.reference:
            headers["X-ApplyForMe-Reference"] = self.reference
        return headers


__all__ = ["BillingEmail", "BillingTemplate"]
