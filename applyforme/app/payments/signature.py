"""PayFast signature computation and verification.

PayFast signs notifications with an MD5 digest over a URL-encoded
parameter string. The digest algorithm and field order are fixed by the
gateway, so both are reproduced exactly here.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Iterable, Mapping, Optional, Tuple
from urllib.parse import quote_plus

from .models import PayFastNotification

logger = logging.getLogger(__name__)

SIGNED_FIELDS: Tuple[str, ...] = (
    "m_payment_id",
    "pf_payment_id",
    "payment_status",
    "item_name",
    "item_description",
    "amount_gross",
    "amount_fee",
    "amount_net",
    "custom_str1",
    "custom_str2",
    "custom_str3",
    "custom_str4",
    "custom_str5",
    "custom_int1",
    "custom_int2",
    "custom_int3",
    "custom_int4",
    "custom_int5",
    "name_first",
    "name_last",
    "email_address",
    "merchant_id",
)


def _encode(value: object) -> str:
    # Matches PHP urlencode, which also escapes "~".
    return quote_plus(str(value).strip(), safe="").replace("~", "%7E")


def build_parameter_string(
    fields: Iterable[Tuple[str, object]],
    passphrase: Optional[str] = None,
) -> str:
    """Join ``key=value`` pairs with ``&``, skipping empty values."""

    parts = []
    for key, value in fields:
        if value is None:
            continue
        if str(value).strip() == "":
            continue
        parts.append(f"{key}={_encode(value)}")
    parameter_string = "&".join(parts)
    if passphrase:
        parameter_string += f"&passphrase={_encode(passphrase)}"
    return parameter_string


def md5_hex(parameter_string: str) -> str:
    return hashlib.md5(parameter_string.encode("utf-8")).hexdigest()


def compute_signature(payload: Mapping[str, object], passphrase: Optional[str] = None) -> str:
    """Return the expected ITN signature for *payload*."""

    ordered = ((name, payload.get(name)) for name in SIGNED_FIELDS)
    return md5_hex(build_parameter_string(ordered, passphrase))


def sign_checkout_fields(fields: Mapping[str, object], passphrase: Optional[str] = None) -> str:
    """Signature for an outbound checkout form, in the form's own field order."""

    ordered = ((key, value) for key, value in fields.items() if key != "signature")
    return md5_hex(build_parameter_string(ordered, passphrase))


class SignatureVerifier:
    """Checks ITN signatures against a configured merchant passphrase."""

    def __init__(self, passphrase: Optional[str] = None) -> None:
        self._passphrase = (passphrase or "").strip() or None

    @property
    def uses_passphrase(self) -> bool:
        return self._passphrase is not None

    def expected_signature(self, notification: PayFastNotification) -> str:
        return compute_signature(notification.model_dump(), self._passphrase)

    def verify(self, notification: PayFastNotification) -> bool:
        received = notification.signature
        if not received:
            logger.warning(
                "PayFast notification without signature",
                extra={"pf_payment_id": notification.pf_payment_id},
            )
            return False

        expected = self.expected_signature(notification)
        is_valid = hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
        if not is_valid:
            logger.warning(
                "PayFast signature validation failed",
                extra={
                    "pf_payment_id": notification.pf_payment_id,
                    "provided_signature": received[:8] + "...",
                },
            )
        return is_valid


__all__ = [
    "SIGNED_FIELDS",
    "SignatureVerifier",
    "build_parameter_string",
    "compute_signature",
    "md5_hex",
    "sign_checkout_fields",
]
