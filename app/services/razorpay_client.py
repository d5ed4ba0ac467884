import hashlib
import hmac
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import requests

logger = logging.getLogger(__name__)

# Razorpay caps receipt strings at 40 characters.
RECEIPT_MAX_LEN = 40


@dataclass
class RazorpayConfig:
    key_id: str             # rzp_live_... / rzp_test_...
    key_secret: str         # Basic auth password; also signs checkout callbacks
    api_base: str = "https://api.razorpay.com/v1"
    timeout: int = 25


class RazorpayError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None, error: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error = error or {}

    @property
    def description(self) -> str:
        return str(self.error.get("description") or self)


def to_paise(amount: Decimal | int | float | str) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def receipt_for_booking(booking_id: str) -> str:
    return f"booking_{booking_id}"[:RECEIPT_MAX_LEN]


def _hmac_sha256_hex(secret: str, msg: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def payment_signature(key_secret: str, order_id: str, payment_id: str) -> str:
    return _hmac_sha256_hex(key_secret, f"{order_id}|{payment_id}".encode("utf-8"))


def verify_payment_signature(key_secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    """Checkout handler signature: hex HMAC-SHA256 over ``order_id|payment_id``."""
    if not (key_secret and order_id and payment_id and signature):
        return False
    expected = payment_signature(key_secret, order_id, payment_id)
    return hmac.compare_digest(expected, signature.strip())


def verify_webhook_signature(webhook_secret: str, body: bytes, signature: str | None) -> bool:
    """X-Razorpay-Signature: hex HMAC-SHA256 over the raw request body."""
    if not (webhook_secret and signature):
        return False
    expected = _hmac_sha256_hex(webhook_secret, body)
    return hmac.compare_digest(expected, signature.strip())


class RazorpayClient:
    def __init__(self, cfg: RazorpayConfig):
        self.cfg = cfg

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.api_base.rstrip('/')}{path}"
        r = requests.request(
            method=method.upper(),
            url=url,
            json=payload if payload is not None else None,
            auth=(self.cfg.key_id, self.cfg.key_secret),
            timeout=self.cfg.timeout,
        )
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            logger.error("Razorpay %s %s failed with %s: %s", method.upper(), path, r.status_code, data)
            raise RazorpayError(f"Razorpay {r.status_code}: {data}", status_code=r.status_code, error=error)
        return data

    def create_order(self, *, amount_paise: int, currency: str, receipt: str, notes: dict | None = None) -> dict:
        payload = {
            "amount": int(amount_paise),
            "currency": currency,
            "receipt": receipt[:RECEIPT_MAX_LEN],
            "notes": notes or {},
        }
        return self.request("POST", "/orders", payload)

    def fetch_order(self, order_id: str) -> dict:
        return self.request("GET", f"/orders/{order_id}")

    def fetch_order_payments(self, order_id: str) -> dict:
        return self.request("GET", f"/orders/{order_id}/payments")

    def refund_payment(self, *, payment_id: str, amount_paise: int, notes: dict | None = None, speed: str = "normal") -> dict:
        payload = {
            "amount": int(amount_paise),
            "speed": speed,
            "notes": notes or {},
        }
        return self.request("POST", f"/payments/{payment_id}/refund", payload)
