"""PayFast API client used for tokenised subscription charges."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib import error as urllib_error
from urllib import request as urllib_request
from urllib.parse import quote

from .signature import build_parameter_string, md5_hex

logger = logging.getLogger(__name__)

API_VERSION = "v1"


class PayFastGateway:
    """Charges stored card tokens through the PayFast subscriptions API."""

    def __init__(
        self,
        *,
        merchant_id: str,
        passphrase: Optional[str],
        api_url: str,
        sandbox: bool = False,
        timeout: float = 10.0,
        opener: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.merchant_id = merchant_id
        self.passphrase = passphrase
        self.api_url = api_url.rstrip("/")
        self.sandbox = sandbox
        self.timeout = timeout
        self._open = opener or urllib_request.urlopen

    def _api_signature(self, headers: Dict[str, str], body: Dict[str, object]) -> str:
        params: Dict[str, object] = {**headers, **body}
        if self.passphrase:
            params["passphrase"] = self.passphrase
        return md5_hex(build_parameter_string(sorted(params.items())))

    def _build_request(self, token: str, body: Dict[str, object]) -> urllib_request.Request:
        timestamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        signed_headers = {
            "merchant-id": self.merchant_id,
            "timestamp": timestamp,
            "version": API_VERSION,
        }
        url = f"{self.api_url}/subscriptions/{quote(token, safe='')}/adhoc"
        if self.sandbox:
            url = f"{url}?testing=true"
        headers = {
            **signed_headers,
            "signature": self._api_signature(signed_headers, body),
            "Content-Type": "application/json",
        }
        return urllib_request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers=headers,
            method="POST",
        )

    def charge_token(self, token: str, *, amount_cents: int, item_name: str) -> bool:
        if not token:
            raise ValueError("token is required")
        request = self._build_request(token, {"amount": amount_cents, "item_name": item_name})
        try:
            with self._open(request, timeout=self.timeout) as response:
                payload = json.loads(response.read().decode("utf-8") or "{}")
        except urllib_error.HTTPError as exc:
            logger.warning("PayFast declined charge for token %s...: HTTP %s", token[:6], exc.code)
            return False

        if not isinstance(payload, dict):
            payload = {}
        data = payload.get("data")
        status = data.get("status") if isinstance(data, dict) else None
        succeeded = (status or payload.get("status")) == "success"
        if not succeeded:
            logger.warning("PayFast charge for token %s... was not successful: %s", token[:6], payload)
        return succeeded


__all__ = ["PayFastGateway"]
