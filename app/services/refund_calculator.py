"""Tiered cancellation refund policy.

The refund is a step function of the time left before the appointment. There
is no interpolation between tiers, and the refund side is rounded once
(half-up to whole rupees) so that refund + deduction always equals the price.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP


@dataclass(frozen=True)
class CancellationPolicyTier:
    min_hours: int
    refund_percentage: int
    label: str


# Scanned top to bottom; the first tier whose threshold is met wins.
CANCELLATION_POLICY: tuple[CancellationPolicyTier, ...] = (
    CancellationPolicyTier(24, 80, "24+ hours before"),
    CancellationPolicyTier(12, 50, "12-24 hours before"),
    CancellationPolicyTier(6, 30, "6-12 hours before"),
    CancellationPolicyTier(1, 10, "1-6 hours before"),
    CancellationPolicyTier(0, 0, "Less than 1 hour before"),
)

PAST_BOOKING_TIER = CancellationPolicyTier(0, 0, "Booking time has passed")


@dataclass(frozen=True)
class RefundComputation:
    percentage: int
    refund_amount: Decimal
    deduction_amount: Decimal
    policy: CancellationPolicyTier
    hours_remaining: int
    minutes_remaining: int
    is_past_booking: bool

    def as_dict(self) -> dict:
        return {
            "percentage": self.percentage,
            "refundAmount": str(self.refund_amount),
            "deductionAmount": str(self.deduction_amount),
            "policyLabel": self.policy.label,
            "hoursRemaining": self.hours_remaining,
            "minutesRemaining": self.minutes_remaining,
            "isPastBooking": self.is_past_booking,
        }


_TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p")


def parse_booking_time(value: str | time) -> time:
    """Accept 24h ``HH:MM[:SS]`` or 12h ``h:MM AM`` strings."""
    if isinstance(value, time):
        return value
    raw = (value or "").strip().upper()
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised booking time: {value!r}")


def booking_instant(booking_date: str | date, booking_time: str | time) -> datetime:
    if isinstance(booking_date, str):
        booking_date = date.fromisoformat(booking_date.strip()[:10])
    return datetime.combine(booking_date, parse_booking_time(booking_time))


def _truncate(value: float) -> int:
    # toward zero
    return int(value)


def select_tier(hours_remaining: int) -> CancellationPolicyTier:
    for tier in CANCELLATION_POLICY:
        if hours_remaining >= tier.min_hours:
            return tier
    return CANCELLATION_POLICY[-1]


def calculate_refund(
    booking_date: str | date,
    booking_time: str | time,
    price: Decimal | int | float | str,
    now: datetime | None = None,
) -> RefundComputation:
    """Compute the refund for cancelling a booking at ``now``.

    ``booking_date``/``booking_time`` are salon-local wall clock values and
    ``now`` must be on the same (naive) clock; it defaults to the local time.
    """
    price = Decimal(str(price))
    if price < 0:
        raise ValueError("price must be >= 0")

    now = now or datetime.now()
    delta_seconds = (booking_instant(booking_date, booking_time) - now).total_seconds()
    hours_remaining = _truncate(delta_seconds / 3600)
    minutes_remaining = _truncate(delta_seconds / 60)

    if minutes_remaining < 0:
        return RefundComputation(
            percentage=0,
            refund_amount=Decimal("0"),
            deduction_amount=price,
            policy=PAST_BOOKING_TIER,
            hours_remaining=hours_remaining,
            minutes_remaining=minutes_remaining,
            is_past_booking=True,
        )

    tier = select_tier(hours_remaining)
    refund_amount = (price * tier.refund_percentage / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return RefundComputation(
        percentage=tier.refund_percentage,
        refund_amount=refund_amount,
        deduction_amount=price - refund_amount,
        policy=tier,
        hours_remaining=hours_remaining,
        minutes_remaining=minutes_remaining,
        is_past_booking=False,
    )
