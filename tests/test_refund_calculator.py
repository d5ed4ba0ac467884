from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app.services.refund_calculator import calculate_refund, parse_booking_time, select_tier

NOW = datetime(2026, 3, 10, 9, 0)


def _at(delta: timedelta):
    when = NOW + delta
    return when.strftime("%Y-%m-%d"), when.strftime("%H:%M")


def test_thirty_hours_before_gets_eighty_percent():
    d, t = _at(timedelta(hours=30))
    r = calculate_refund(d, t, 1000, now=NOW)
    assert r.percentage == 80
    assert r.refund_amount == Decimal("800")
    assert r.deduction_amount == Decimal("200")
    assert r.policy.label == "24+ hours before"
    assert r.hours_remaining == 30
    assert not r.is_past_booking


def test_ten_hours_before_gets_thirty_percent():
    d, t = _at(timedelta(hours=10))
    r = calculate_refund(d, t, 500, now=NOW)
    assert r.percentage == 30
    assert r.refund_amount == Decimal("150")
    assert r.deduction_amount == Decimal("350")


@pytest.mark.parametrize("hours,minutes,expected", [
    (24, 0, 80),
    (23, 59, 50),
    (12, 0, 50),
    (11, 59, 30),
    (6, 0, 30),
    (5, 59, 10),
    (1, 0, 10),
    (0, 59, 0),
    (0, 0, 0),
])
def test_tier_boundaries(hours, minutes, expected):
    d, t = _at(timedelta(hours=hours, minutes=minutes))
    assert calculate_refund(d, t, 1000, now=NOW).percentage == expected


def test_past_booking_is_flagged_with_full_deduction():
    d, t = _at(timedelta(minutes=-1))
    r = calculate_refund(d, t, "749.50", now=NOW)
    assert r.is_past_booking
    assert r.percentage == 0
    assert r.refund_amount == Decimal("0")
    assert r.deduction_amount == Decimal("749.50")
    assert r.minutes_remaining == -1


def test_less_than_a_minute_late_is_not_past():
    # whole minutes truncate toward zero
    r = calculate_refund("2026-03-10", "09:00", 300, now=NOW + timedelta(seconds=30))
    assert not r.is_past_booking
    assert r.percentage == 0


def test_rounding_is_half_up_on_the_refund_side():
    d, t = _at(timedelta(hours=2))
    r = calculate_refund(d, t, 5, now=NOW)  # 10% of 5 = 0.5
    assert r.refund_amount == Decimal("1")
    assert r.deduction_amount == Decimal("4")


@pytest.mark.parametrize("price", ["0", "1", "99.99", "333", "1234.56", "100000"])
@pytest.mark.parametrize("hours", [0, 1, 7, 13, 30])
def test_refund_plus_deduction_equals_price(price, hours):
    d, t = _at(timedelta(hours=hours))
    r = calculate_refund(d, t, price, now=NOW)
    assert r.refund_amount + r.deduction_amount == Decimal(price)


def test_negative_price_rejected():
    with pytest.raises(ValueError):
        calculate_refund("2026-03-11", "10:00", -1, now=NOW)


def test_twelve_hour_clock_times():
    assert parse_booking_time("2:30 PM").hour == 14
    assert parse_booking_time("09:15:00").minute == 15
    with pytest.raises(ValueError):
        parse_booking_time("quarter past nine")


def test_as_dict_uses_api_field_names():
    d, t = _at(timedelta(hours=30))
    body = calculate_refund(d, t, 1000, now=NOW).as_dict()
    assert body["refundAmount"] == "800"
    assert body["policyLabel"] == "24+ hours before"
    assert body["isPastBooking"] is False


def test_select_tier_scans_largest_first():
    assert select_tier(100).refund_percentage == 80
    assert select_tier(0).label == "Less than 1 hour before"
