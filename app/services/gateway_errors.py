"""Classification of Razorpay checkout failures into retryable and terminal."""
import random
from dataclasses import dataclass

# Vendor codes known to be transient. BAD_REQUEST_ERROR shows up spuriously on
# some mobile UPI-app handoffs and succeeds on a fresh attempt.
RETRYABLE_ERROR_CODES = frozenset({
    "GATEWAY_ERROR",
    "SERVER_ERROR",
    "NETWORK_ERROR",
    "TIMEOUT",
    "BAD_REQUEST_ERROR",
})

MAX_RETRIES = 3
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 10_000
JITTER_MS = 500


@dataclass(frozen=True)
class GatewayError:
    code: str = ""
    description: str = ""
    source: str = ""
    step: str = ""
    reason: str = ""

    @classmethod
    def from_payload(cls, payload: dict | None) -> "GatewayError":
        """Build from the ``error`` object of a ``payment.failed`` event."""
        err = (payload or {}).get("error", payload) or {}
        return cls(
            code=str(err.get("code") or ""),
            description=str(err.get("description") or ""),
            source=str(err.get("source") or ""),
            step=str(err.get("step") or ""),
            reason=str(err.get("reason") or ""),
        )

    @property
    def message(self) -> str:
        return self.description or "Payment failed"


def is_retryable(error: GatewayError) -> bool:
    if error.code.upper() in RETRYABLE_ERROR_CODES:
        return True
    if error.source.lower() == "bank":
        return True
    reason = error.reason.lower()
    return "timeout" in reason or "network" in reason


def retry_delay_ms(attempt: int, base_ms: int = BASE_DELAY_MS, max_ms: int = MAX_DELAY_MS,
                   jitter_ms: int = JITTER_MS, rng: random.Random | None = None) -> float:
    """min(base * 2^attempt, max) plus uniform jitter in [0, jitter_ms)."""
    jitter = (rng or random).random() * jitter_ms
    return min(base_ms * (2 ** attempt), max_ms) + jitter
