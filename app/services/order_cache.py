import logging
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

ORDER_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class PaymentOrder:
    order_id: str
    key_id: str
    amount: int       # paise, as returned by the gateway
    currency: str
    created_at: float = field(default=0.0)


class OrderCache:
    """Gateway orders keyed by booking id, so a retried checkout reuses its order.

    Owned by one orchestrator (one checkout session); there are no concurrent
    writers, so no locking.
    """

    def __init__(self, ttl_seconds: float = ORDER_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._orders: dict[str, PaymentOrder] = {}

    def get(self, booking_id: str) -> PaymentOrder | None:
        order = self._orders.get(booking_id)
        if order is None:
            return None
        if self._clock() - order.created_at >= self.ttl_seconds:
            logger.debug("Cached order %s for booking %s expired", order.order_id, booking_id)
            del self._orders[booking_id]
            return None
        return order

    def put(self, booking_id: str, order_id: str, key_id: str, amount: int, currency: str) -> PaymentOrder:
        order = PaymentOrder(order_id=order_id, key_id=key_id, amount=amount, currency=currency, created_at=self._clock())
        self._orders[booking_id] = order
        return order

    def invalidate(self, booking_id: str) -> None:
        self._orders.pop(booking_id, None)

    def clear(self) -> None:
        self._orders.clear()

    def __len__(self) -> int:
        return len(self._orders)
