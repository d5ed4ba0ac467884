import hashlib
import hmac

import pytest
import requests

from app.services import razorpay_client as rc


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data
        self.text = "x"

    def json(self):
        return self._data


def test_payment_signature_matches_razorpay_scheme():
    expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert rc.payment_signature("secret", "order_1", "pay_1") == expected
    assert rc.verify_payment_signature("secret", "order_1", "pay_1", expected)
    assert not rc.verify_payment_signature("secret", "order_1", "pay_2", expected)
    assert not rc.verify_payment_signature("secret", "order_1", "pay_1", "")


def test_webhook_signature_over_raw_body():
    body = b'{"event":"payment.captured"}'
    sig = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
    assert rc.verify_webhook_signature("whsec", body, sig)
    assert not rc.verify_webhook_signature("whsec", body + b" ", sig)
    assert not rc.verify_webhook_signature("whsec", body, None)


def test_amount_helpers():
    assert rc.to_paise("499") == 49900
    assert rc.to_paise("0.005") == 1
    assert rc.receipt_for_booking("x" * 60) == ("booking_" + "x" * 60)[:40]


def test_create_order_uses_basic_auth(monkeypatch):
    seen = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return FakeResponse(200, {"id": "order_1", "amount": 49900, "currency": "INR"})

    monkeypatch.setattr(requests, "request", fake_request)
    client = rc.RazorpayClient(rc.RazorpayConfig(key_id="rzp_test", key_secret="s", api_base="https://api.razorpay.com/v1/"))
    assert client.create_order(amount_paise=49900, currency="INR", receipt="r" * 50)["id"] == "order_1"
    assert seen["url"] == "https://api.razorpay.com/v1/orders"
    assert seen["auth"] == ("rzp_test", "s")
    assert len(seen["json"]["receipt"]) == 40


def test_gateway_error_carries_description(monkeypatch):
    monkeypatch.setattr(requests, "request", lambda **kw: FakeResponse(
        400, {"error": {"code": "BAD_REQUEST_ERROR", "description": "The amount must be at least INR 1.00"}}))
    client = rc.RazorpayClient(rc.RazorpayConfig(key_id="k", key_secret="s"))
    with pytest.raises(rc.RazorpayError) as exc:
        client.refund_payment(payment_id="pay_1", amount_paise=0)
    assert exc.value.status_code == 400
    assert exc.value.description == "The amount must be at least INR 1.00"


def test_fetch_order_is_a_get(monkeypatch):
    seen = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return FakeResponse(200, {"id": "order_9", "notes": {"type": "wallet_topup"}})

    monkeypatch.setattr(requests, "request", fake_request)
    client = rc.RazorpayClient(rc.RazorpayConfig(key_id="k", key_secret="s"))
    assert client.fetch_order("order_9")["notes"]["type"] == "wallet_topup"
    assert (seen["method"], seen["url"]) == ("GET", "https://api.razorpay.com/v1/orders/order_9")
