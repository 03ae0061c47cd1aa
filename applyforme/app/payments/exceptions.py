"""Errors raised while processing PayFast payments."""
from __future__ import annotations

from fastapi import status


class PaymentError(Exception):
    """Business-level rejection of a payment notification."""

    status_code: int = status.HTTP_400_BAD_REQUEST


class MalformedPayloadError(PaymentError):
    """The body could not be read as a flat PayFast payload."""


class InvalidSignatureError(PaymentError):
    """The supplied signature does not match the recomputed one."""


class MissingCorrelationError(PaymentError):
    """The notification does not carry the user id in ``custom_str1``."""


class UnknownProductError(PaymentError):
    """The product identifier is not one the platform sells."""


class RecruiterNotFoundError(PaymentError):
    """No recruiter profile exists for the correlated user id."""


class InvalidCreditAmountError(PaymentError):
    """The credit amount is missing, non-numeric or not positive."""


__all__ = [
    "InvalidCreditAmountError",
    "InvalidSignatureError",
    "MalformedPayloadError",
    "MissingCorrelationError",
    "PaymentError",
    "RecruiterNotFoundError",
    "UnknownProductError",
]
