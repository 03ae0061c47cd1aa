import io
import json
from urllib import error as urllib_error

import pytest

from applyforme.app.payments.gateway import PayFastGateway


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


class _RecordingOpener:
    def __init__(self, body: object = None, *, error: Exception | None = None) -> None:
        self.body = body if body is not None else {"code": 200, "status": "success", "data": {"response": True}}
        self.error = error
        self.requests = []

    def __call__(self, request, timeout=None):
        self.requests.append((request, timeout))
        if self.error is not None:
            raise self.error
        return _Response(json.dumps(self.body).encode("utf-8"))


def _gateway(opener, *, sandbox=True):
    return PayFastGateway(
        merchant_id="10000100",
        passphrase="jt7NOE43FZPn",
        api_url="https://api.payfast.co.za/",
        sandbox=sandbox,
        opener=opener,
    )


def test_charge_token_posts_signed_request():
    opener = _RecordingOpener()

    assert _gateway(opener).charge_token("tok/1", amount_cents=49900, item_name="Premium renewal")

    request, timeout = opener.requests[0]
    assert request.full_url == "https://api.payfast.co.za/subscriptions/tok%2F1/adhoc?testing=true"
    assert request.get_method() == "POST"
    assert timeout == 10.0
    assert json.loads(request.data) == {"amount": 49900, "item_name": "Premium renewal"}
    headers = {key.lower(): value for key, value in request.header_items()}
    assert headers["merchant-id"] == "10000100"
    assert headers["version"] == "v1"
    assert len(headers["signature"]) == 32


def test_live_mode_omits_testing_flag():
    opener = _RecordingOpener()

    _gateway(opener, sandbox=False).charge_token("tok", amount_cents=100, item_name="x")

    assert opener.requests[0][0].full_url == "https://api.payfast.co.za/subscriptions/tok/adhoc"


def test_charge_token_reports_declined_status():
    opener = _RecordingOpener({"code": 200, "status": "failed", "data": {"message": "declined"}})

    assert not _gateway(opener).charge_token("tok", amount_cents=100, item_name="x")


def test_http_error_is_treated_as_declined():
    error = urllib_error.HTTPError("https://api.payfast.co.za", 400, "Bad Request", {}, None)

    assert not _gateway(_RecordingOpener(error=error)).charge_token("tok", amount_cents=100, item_name="x")


def test_network_error_propagates():
    opener = _RecordingOpener(error=urllib_error.URLError("timed out"))

    with pytest.raises(urllib_error.URLError):
        _gateway(opener).charge_token("tok", amount_cents=100, item_name="x")


def test_empty_token_is_rejected():
    with pytest.raises(ValueError):
        _gateway(_RecordingOpener()).charge_token("", amount_cents=100, item_name="x")
