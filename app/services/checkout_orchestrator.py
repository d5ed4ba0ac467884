"""
Client-side checkout coordinator for Razorpay.

One ``pay()`` call walks a single checkout attempt through

    IDLE -> ORDER_CREATED -> CHECKOUT_OPEN -> VERIFYING -> SUCCEEDED
                                          -> FAILED_RETRYABLE -> (retry) ORDER_CREATED
                                          -> FAILED_TERMINAL
                                          -> DISMISSED -> RECONCILING -> SUCCEEDED | PENDING | CANCELLED

The hosted checkout reports its outcome through three callbacks (handler,
ondismiss, payment.failed). ``CheckoutEventLatch`` turns those into one
awaited ``CheckoutEvent``: whichever fires first wins and later ones are
ignored.

Nothing here can mark a booking paid. Success is reported only after the
server recomputed the signature (verify) or polled a captured payment
(reconcile); transport errors on either path count as "not confirmed".
"""
from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import httpx

from app.services.gateway_errors import (
    BASE_DELAY_MS,
    JITTER_MS,
    MAX_DELAY_MS,
    MAX_RETRIES,
    GatewayError,
    is_retryable,
    retry_delay_ms,
)
from app.services.order_cache import OrderCache, PaymentOrder
from app.services.razorpay_client import receipt_for_booking

logger = logging.getLogger(__name__)

PENDING_MESSAGE = "Your payment is still being processed. Please check My Bookings shortly."
CANCELLED_MESSAGE = "Payment cancelled"


class CheckoutStatus(str, enum.Enum):
    IDLE = "idle"
    ORDER_CREATED = "order_created"
    CHECKOUT_OPEN = "checkout_open"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"
    DISMISSED = "dismissed"
    RECONCILING = "reconciling"
    PENDING = "pending"
    CANCELLED = "cancelled"


class CheckoutError(Exception):
    pass


class CheckoutValidationError(CheckoutError, ValueError):
    pass


class CheckoutCancelled(CheckoutError):
    pass


@dataclass
class CheckoutConfig:
    api_base: str                      # e.g. https://api.grumming.com/api/v1
    api_key: str = ""                  # sent as the ``apikey`` header
    currency: str = "INR"
    max_retries: int = MAX_RETRIES
    base_delay_ms: int = BASE_DELAY_MS
    max_delay_ms: int = MAX_DELAY_MS
    jitter_ms: int = JITTER_MS
    timeout: float = 20.0


@dataclass
class PaymentRequest:
    booking_id: str
    amount: float | int | str          # rupees; advisory, the server charges the booking price
    salon_name: str = ""
    service_name: str = ""
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""


@dataclass(frozen=True)
class CheckoutEvent:
    kind: str                          # success | failure | dismiss
    payment_id: str = ""
    order_id: str = ""
    signature: str = ""
    error: GatewayError | None = None

    @classmethod
    def success(cls, payment_id: str, order_id: str, signature: str) -> "CheckoutEvent":
        return cls("success", payment_id=payment_id, order_id=order_id, signature=signature)

    @classmethod
    def failure(cls, error: GatewayError) -> "CheckoutEvent":
        return cls("failure", error=error)

    @classmethod
    def dismiss(cls) -> "CheckoutEvent":
        return cls("dismiss")


@dataclass
class PaymentResult:
    success: bool
    status: CheckoutStatus
    payment_id: str | None = None
    order_id: str | None = None
    error: str | None = None
    retry_count: int = 0

    @property
    def pending(self) -> bool:
        return self.status is CheckoutStatus.PENDING


class CheckoutEventLatch:
    """First-event-wins bridge from SDK callbacks to a single awaitable."""

    def __init__(self):
        self._future: asyncio.Future[CheckoutEvent] = asyncio.get_running_loop().create_future()

    def _resolve(self, event: CheckoutEvent) -> None:
        if not self._future.done():
            self._future.set_result(event)

    def handler(self, response: dict) -> None:
        self._resolve(CheckoutEvent.success(
            payment_id=response.get("razorpay_payment_id", ""),
            order_id=response.get("razorpay_order_id", ""),
            signature=response.get("razorpay_signature", ""),
        ))

    def on_payment_failed(self, response: dict) -> None:
        self._resolve(CheckoutEvent.failure(GatewayError.from_payload(response)))

    def ondismiss(self) -> None:
        self._resolve(CheckoutEvent.dismiss())

    async def wait(self) -> CheckoutEvent:
        return await self._future


class CheckoutGateway(Protocol):
    """Opens the hosted checkout for an order and reports how it ended."""

    async def open(self, order: PaymentOrder, request: PaymentRequest) -> CheckoutEvent: ...


StatusListener = Callable[[CheckoutStatus, str], None]


class PaymentOrchestrator:
    def __init__(
        self,
        config: CheckoutConfig,
        gateway: CheckoutGateway,
        order_cache: OrderCache | None = None,
        http: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
        on_status: StatusListener | None = None,
    ):
        self.config = config
        self.gateway = gateway
        self.order_cache = order_cache if order_cache is not None else OrderCache()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            base_url=config.api_base,
            timeout=config.timeout,
            headers={"apikey": config.api_key} if config.api_key else None,
        )
        self._sleep = sleep
        self._rng = rng
        self._on_status = on_status
        self._pending_retry: asyncio.Task | None = None
        self._cancelled = False
        self.state = CheckoutStatus.IDLE
        self.transitions: list[CheckoutStatus] = []

    async def __aenter__(self) -> "PaymentOrchestrator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.cancel()
        if self._owns_http:
            await self.http.aclose()

    def cancel(self) -> None:
        """Abort a scheduled retry, e.g. when the checkout screen is torn down."""
        self._cancelled = True
        if self._pending_retry is not None and not self._pending_retry.done():
            self._pending_retry.cancel()

    def _set_state(self, state: CheckoutStatus, message: str = "") -> None:
        self.state = state
        self.transitions.append(state)
        if self._on_status is not None and message:
            self._on_status(state, message)

    # -- public entry point -------------------------------------------------

    async def pay(self, request: PaymentRequest) -> PaymentResult:
        self._validate(request)
        self._cancelled = False
        self.transitions.clear()
        self._set_state(CheckoutStatus.IDLE)

        for attempt in range(self.config.max_retries):
            result = await self._attempt(request, attempt, may_retry=True)
            if result is not None:
                return result
            await self._wait_before_retry(attempt)
        return await self._attempt(request, self.config.max_retries, may_retry=False)

    # -- steps ---------------------------------------------------------------

    async def _attempt(self, request: PaymentRequest, attempt: int, may_retry: bool) -> PaymentResult | None:
        """One order + checkout round. None means a retryable failure to back off from."""
        try:
            order = await self._get_or_create_order(request)
        except CheckoutError as e:
            self._set_state(CheckoutStatus.FAILED_TERMINAL, str(e))
            return PaymentResult(False, CheckoutStatus.FAILED_TERMINAL, error=str(e), retry_count=attempt)

        self._set_state(CheckoutStatus.CHECKOUT_OPEN)
        event = await self.gateway.open(order, request)

        if event.kind == "success":
            return await self._verify(request, order, event, attempt)
        if event.kind == "dismiss":
            self._set_state(CheckoutStatus.DISMISSED)
            return await self._reconcile(request, order, attempt)

        error = event.error or GatewayError()
        if may_retry and is_retryable(error):
            self._set_state(
                CheckoutStatus.FAILED_RETRYABLE,
                f"Payment failed, retrying ({attempt + 1}/{self.config.max_retries})...",
            )
            return None

        self._set_state(CheckoutStatus.FAILED_TERMINAL, error.message)
        logger.info("Checkout for booking %s failed after %s retries: %s", request.booking_id, attempt, error.code)
        return PaymentResult(False, CheckoutStatus.FAILED_TERMINAL, order_id=order.order_id,
                             error=error.message, retry_count=attempt)

    def _validate(self, request: PaymentRequest) -> None:
        if not request.booking_id:
            raise CheckoutValidationError("Booking ID is required for payment")
        try:
            amount = float(request.amount)
        except (TypeError, ValueError):
            raise CheckoutValidationError("Invalid amount")
        if amount <= 0:
            raise CheckoutValidationError("Invalid amount")

    async def _get_or_create_order(self, request: PaymentRequest) -> PaymentOrder:
        cached = self.order_cache.get(request.booking_id)
        if cached is not None:
            logger.debug("Reusing order %s for booking %s", cached.order_id, request.booking_id)
            self._set_state(CheckoutStatus.ORDER_CREATED)
            return cached

        payload = {
            "amount": request.amount,
            "currency": self.config.currency,
            "booking_id": request.booking_id,
            "receipt": receipt_for_booking(request.booking_id),
            "notes": {"salon": request.salon_name, "service": request.service_name},
        }
        try:
            r = await self.http.post("/payments/razorpay/orders", json=payload)
        except httpx.HTTPError as e:
            logger.warning("Order creation for booking %s failed: %s", request.booking_id, e)
            raise CheckoutError("Failed to create order") from e
        data = _json(r)
        if r.status_code >= 400 or not data.get("orderId"):
            raise CheckoutError(_error_text(data, "Failed to create order"))

        order = self.order_cache.put(
            request.booking_id,
            order_id=data["orderId"],
            key_id=data.get("keyId", ""),
            amount=int(data.get("amount") or 0),
            currency=data.get("currency") or self.config.currency,
        )
        self._set_state(CheckoutStatus.ORDER_CREATED)
        return order

    async def _wait_before_retry(self, attempt: int) -> None:
        delay_ms = retry_delay_ms(attempt, self.config.base_delay_ms, self.config.max_delay_ms,
                                  self.config.jitter_ms, self._rng)
        if self._cancelled:
            raise CheckoutCancelled("Checkout cancelled")
        self._pending_retry = asyncio.ensure_future(self._sleep(delay_ms / 1000))
        try:
            await self._pending_retry
        except asyncio.CancelledError:
            if self._cancelled:
                raise CheckoutCancelled("Checkout cancelled")
            raise
        finally:
            self._pending_retry = None
        if self._cancelled:
            raise CheckoutCancelled("Checkout cancelled")

    async def _verify(self, request: PaymentRequest, order: PaymentOrder, event: CheckoutEvent, attempt: int) -> PaymentResult:
        self._set_state(CheckoutStatus.VERIFYING)
        payload = {
            "razorpay_order_id": event.order_id or order.order_id,
            "razorpay_payment_id": event.payment_id,
            "razorpay_signature": event.signature,
            "booking_id": request.booking_id,
        }
        error = "Payment verification failed"
        try:
            r = await self.http.post("/payments/razorpay/verify", json=payload)
            data = _json(r)
            if r.status_code < 400 and data.get("success") is True:
                self.order_cache.invalidate(request.booking_id)
                self._set_state(CheckoutStatus.SUCCEEDED)
                return PaymentResult(True, CheckoutStatus.SUCCEEDED, payment_id=event.payment_id,
                                     order_id=payload["razorpay_order_id"], retry_count=attempt)
            error = _error_text(data, error)
        except httpx.HTTPError as e:
            logger.warning("Verification for booking %s failed in transport: %s", request.booking_id, e)

        self._set_state(CheckoutStatus.FAILED_TERMINAL, error)
        return PaymentResult(False, CheckoutStatus.FAILED_TERMINAL, order_id=order.order_id,
                             error=error, retry_count=attempt)

    async def _reconcile(self, request: PaymentRequest, order: PaymentOrder, attempt: int) -> PaymentResult:
        self._set_state(CheckoutStatus.RECONCILING)
        data: dict = {}
        try:
            r = await self.http.post(
                "/payments/razorpay/reconcile",
                json={"booking_id": request.booking_id, "razorpay_order_id": order.order_id},
            )
            data = _json(r) if r.status_code < 400 else {}
        except httpx.HTTPError as e:
            logger.warning("Reconcile for booking %s failed in transport: %s", request.booking_id, e)

        status = data.get("status")
        if status == "captured" and data.get("payment_id"):
            self.order_cache.invalidate(request.booking_id)
            self._set_state(CheckoutStatus.SUCCEEDED)
            return PaymentResult(True, CheckoutStatus.SUCCEEDED, payment_id=data["payment_id"],
                                 order_id=order.order_id, retry_count=attempt)
        if status == "pending":
            self._set_state(CheckoutStatus.PENDING, PENDING_MESSAGE)
            return PaymentResult(False, CheckoutStatus.PENDING, order_id=order.order_id,
                                 error=PENDING_MESSAGE, retry_count=attempt)

        self._set_state(CheckoutStatus.CANCELLED, CANCELLED_MESSAGE)
        return PaymentResult(False, CheckoutStatus.CANCELLED, order_id=order.order_id,
                             error=CANCELLED_MESSAGE, retry_count=attempt)


def _json(r: httpx.Response) -> dict:
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_text(data: dict, default: str) -> str:
    # FastAPI validation errors put a list under "detail"
    message = data.get("error") or data.get("detail")
    return message if isinstance(message, str) and message else default
