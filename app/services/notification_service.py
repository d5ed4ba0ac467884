"""
User notifications for refunds, waived penalties and payment receipts.

Everything here is best effort: failures are logged and swallowed so that a
refund or payment is never blocked or reversed by a notification channel.
Call these only after the money-moving change has been committed.
"""
import logging
import uuid
from decimal import Decimal
from html import escape

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.notification import Notification
from app.models.user import User
from app.services.email_service import queue_email
from app.services.sms_service import send_sms

logger = logging.getLogger(__name__)

REFUND_STATUSES = ("initiated", "processed", "completed", "failed")

_REFUND_COPY = {
    "initiated": {
        "subject": "Refund Initiated - Grumming",
        "heading": "Your Refund Has Been Initiated",
        "message": "We've initiated a refund of Rs.{amount} for your cancelled booking.",
        "timeline": "Your refund will be credited to your original payment method within {days}.",
        "title": "Refund Initiated",
    },
    "processed": {
        "subject": "Refund Processed - Grumming",
        "heading": "Your Refund Has Been Processed",
        "message": "Great news! Your refund of Rs.{amount} has been successfully processed.",
        "timeline": "The amount will be credited to your original payment method within 3-5 business days, depending on your bank.",
        "title": "Refund Processed",
    },
    "completed": {
        "subject": "Refund Completed - Grumming",
        "heading": "Your Refund is Complete",
        "message": "Your refund of Rs.{amount} has been credited to your account.",
        "timeline": "If you don't see the amount reflected, please check with your bank or wait a few more hours for it to appear.",
        "title": "Refund Completed",
    },
    "failed": {
        "subject": "Refund Issue - Grumming",
        "heading": "Refund Requires Attention",
        "message": "We encountered an issue processing your refund of Rs.{amount}.",
        "timeline": "Our team has been notified and will resolve this within 24-48 hours. You'll receive an update soon.",
        "title": "Refund Issue",
    },
}


def _fmt_amount(amount) -> str:
    value = Decimal(str(amount))
    return str(value.quantize(Decimal("1"))) if value == value.to_integral_value() else str(value.quantize(Decimal("0.01")))


def _render_html(heading: str, greeting: str, lines: list[str], rows: list[tuple[str, str]]) -> str:
    body = "".join(f"<p>{escape(line)}</p>" for line in lines)
    table = "".join(f"<tr><td>{escape(k)}</td><td><strong>{escape(v)}</strong></td></tr>" for k, v in rows)
    return (
        f"<html><body><h1>{escape(heading)}</h1><p>{escape(greeting)}</p>{body}"
        f"<table>{table}</table>"
        f"<p><a href=\"{settings.CLIENT_BASE_URL}/payment-history\">View Payment History</a></p>"
        f"<p>Questions? Contact us at {escape(settings.SUPPORT_EMAIL)}</p></body></html>"
    )


def create_in_app_notification(db: Session, user_id: str, title: str, message: str, type: str, link: str | None = "/my-bookings") -> bool:
    try:
        db.add(Notification(id=str(uuid.uuid4()), user_id=user_id, title=title, message=message, type=type, link=link))
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.error("In-app notification for %s failed: %s", user_id, e)
        return False


def send_refund_notification(
    db: Session,
    *,
    user_id: str,
    booking_id: str,
    salon_name: str,
    service_name: str,
    refund_amount,
    refund_status: str,
    refund_id: str | None = None,
    estimated_days: str | None = None,
) -> dict:
    """Email + SMS + in-app notice for a refund status change. Returns per-channel results."""
    results = {"email": False, "sms": None, "inApp": False}
    if refund_status not in REFUND_STATUSES:
        logger.error("Unknown refund status %r for booking %s", refund_status, booking_id)
        return results

    copy = _REFUND_COPY[refund_status]
    amount = _fmt_amount(refund_amount)
    message = copy["message"].format(amount=amount)
    timeline = copy["timeline"].format(days=estimated_days or settings.REFUND_ESTIMATED_DAYS)

    results["inApp"] = create_in_app_notification(db, user_id, copy["title"], f"{message} {timeline}", "refund")

    try:
        user = db.get(User, user_id)
    except Exception as e:
        logger.error("Could not load user %s for refund notification: %s", user_id, e)
        return results
    if not user:
        logger.info("No user %s for refund notification", user_id)
        return results

    if user.email:
        try:
            rows = [("Salon", salon_name), ("Service", service_name), ("Refund Amount", f"Rs.{amount}"), ("Status", refund_status.upper())]
            if refund_id:
                rows.append(("Refund ID", refund_id))
            greeting = f"Hi {user.full_name or 'there'},"
            text = "\n\n".join([greeting, message, timeline] + [f"{k}: {v}" for k, v in rows])
            html = _render_html(copy["heading"], greeting, [message, timeline], rows)
            queue_email(db, user.email, copy["subject"], text, html=html, related_booking_id=booking_id)
            results["email"] = True
        except Exception as e:
            db.rollback()
            logger.error("Refund email for booking %s failed: %s", booking_id, e)

    if user.phone:
        try:
            results["sms"] = send_sms(user.phone, f"Grumming: {message} Booking at {salon_name}.")
        except Exception as e:
            logger.error("Refund SMS for booking %s failed: %s", booking_id, e)

    return results


def send_penalty_waived_notification(db: Session, *, user_id: str, penalty_amount, salon_name: str, waived_reason: str | None = None) -> dict:
    results = {"email": False, "sms": None, "inApp": False}
    amount = _fmt_amount(penalty_amount)
    message = f"Good news! Your Rs.{amount} cancellation penalty for {salon_name} has been waived. No extra charges on your next booking!"
    results["inApp"] = create_in_app_notification(db, user_id, "Penalty Waived!", message, "penalty_waived")

    user = db.get(User, user_id)
    if not user:
        return results
    name = user.full_name or "there"
    if user.email:
        try:
            lines = [message] + ([f"Reason: {waived_reason}"] if waived_reason else [])
            queue_email(db, user.email, "Penalty Waived - Grumming", "\n\n".join([f"Hi {name},"] + lines),
                        html=_render_html("Penalty Waived", f"Hi {name},", lines, [("Salon", salon_name), ("Amount", f"Rs.{amount}")]))
            results["email"] = True
        except Exception as e:
            db.rollback()
            logger.error("Penalty waived email for %s failed: %s", user_id, e)
    if user.phone:
        try:
            results["sms"] = send_sms(
                user.phone,
                f"Grumming: Great news {name}! Your Rs.{amount} cancellation penalty for {salon_name} has been waived. No extra charges on your next booking!",
            )
        except Exception as e:
            logger.error("Penalty waived SMS for %s failed: %s", user_id, e)
    return results


def send_payment_receipt(db: Session, *, user_id: str, booking_id: str, payment_id: str, amount, salon_name: str, service_name: str) -> bool:
    try:
        user = db.get(User, user_id)
        if not user or not user.email:
            return False
        amount_s = _fmt_amount(amount)
        rows = [("Salon", salon_name), ("Service", service_name), ("Amount Paid", f"Rs.{amount_s}"), ("Payment ID", payment_id)]
        greeting = f"Hi {user.full_name or 'there'},"
        line = "Your payment was successful and your booking is confirmed."
        queue_email(
            db, user.email, "Payment Receipt - Grumming",
            "\n\n".join([greeting, line] + [f"{k}: {v}" for k, v in rows]),
            html=_render_html("Payment Receipt", greeting, [line], rows),
            related_booking_id=booking_id,
        )
        return True
    except Exception as e:
        db.rollback()
        logger.error("Payment receipt for booking %s failed: %s", booking_id, e)
        return False
