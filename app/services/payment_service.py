"""
Server side of the Razorpay payment lifecycle.

A booking only ever becomes ``confirmed`` here, and only from one of three
sources: a checkout callback whose signature we recompute, an order whose
payments we polled from Razorpay and found captured, or a signed webhook.
Client-reported success is never enough.
"""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment
from app.models.webhook_log import WebhookLog
from app.services import penalty_service, wallet_service
from app.services.audit_service import log_audit
from app.services.notification_service import send_payment_receipt, send_refund_notification
from app.services.razorpay_client import (
    RazorpayClient,
    RazorpayConfig,
    RazorpayError,
    receipt_for_booking,
    to_paise,
    verify_payment_signature,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)


class GatewayNotConfigured(RuntimeError):
    pass


def razorpay_client() -> RazorpayClient:
    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        raise GatewayNotConfigured("Payment gateway not configured")
    return RazorpayClient(RazorpayConfig(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        api_base=settings.RAZORPAY_API_BASE,
    ))


def booking_for_update(booking_id: str):
    """Row-locked booking load; the lock is held until the caller commits."""
    return (
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _get_booking(db: Session, booking_id: str | None) -> Booking:
    if not booking_id:
        raise ValueError("Booking ID is required")
    b = db.execute(booking_for_update(booking_id)).scalar_one_or_none()
    if not b:
        raise LookupError("Booking not found")
    return b


def split_platform_fee(service_amount: Decimal, fee_percentage: int) -> tuple[Decimal, Decimal]:
    """Platform commission on the service price only, rounded to the paisa."""
    fee = (Decimal(service_amount) * fee_percentage / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return fee, Decimal(service_amount) - fee


# ---------------------------------------------------------------------------
# Order creation
# ---------------------------------------------------------------------------

def create_order(db: Session, *, booking_id: str | None, amount=None, currency: str | None = None,
                 receipt: str | None = None, notes: dict | None = None) -> dict:
    """Create a Razorpay order for the booking's own price.

    ``amount`` is what the client believes it is paying. It is advisory: the
    order is always created for the stored service price, and a mismatch is
    rejected outright.
    """
    b = _get_booking(db, booking_id)
    if b.status not in BookingStatus.PAYABLE:
        logger.warning("Booking %s status not payable: %s", b.id, b.status)
        raise ValueError("Booking cannot be paid for")

    price = Decimal(b.service_price)
    if amount is not None:
        try:
            client_amount = Decimal(str(amount))
        except InvalidOperation:
            raise ValueError("Invalid amount")
        if client_amount != price:
            logger.warning("Amount mismatch for booking %s: client=%s server=%s", b.id, client_amount, price)
            raise ValueError("Amount does not match booking price")

    currency = (currency or settings.RAZORPAY_CURRENCY).strip().upper()
    order = razorpay_client().create_order(
        amount_paise=to_paise(price),
        currency=currency,
        receipt=(receipt or receipt_for_booking(b.id)),
        notes={**(notes or {}), "booking_id": b.id},
    )
    order_id = str(order.get("id") or "")
    if not order_id:
        raise RazorpayError(f"Razorpay order response missing id: {order}")

    b.razorpay_order_id = order_id
    log_audit(db, actor_user_id=b.user_id, action="order_created", entity_type="booking", entity_id=b.id,
              details={"order_id": order_id, "amount": price, "currency": currency})
    db.commit()
    logger.info("Order %s created for booking %s amount %s %s", order_id, b.id, price, currency)

    return {
        "orderId": order_id,
        "keyId": settings.RAZORPAY_KEY_ID,
        "amount": int(order.get("amount") or to_paise(price)),
        "currency": order.get("currency") or currency,
    }


# ---------------------------------------------------------------------------
# Confirmation (shared by verify, reconcile, webhook and the worker)
# ---------------------------------------------------------------------------

def confirm_booking_payment(db: Session, b: Booking, *, order_id: str, payment_id: str,
                            payment_method: str = "razorpay", actor: str = "system") -> bool:
    """Record a captured payment and confirm the booking. Idempotent.

    Returns True when this call confirmed the booking.
    """
    if b.status == BookingStatus.CONFIRMED and b.payment_id == payment_id:
        return False

    service_amount = Decimal(b.service_price)
    fee_pct = settings.PLATFORM_FEE_PERCENT
    platform_fee, salon_amount = split_platform_fee(service_amount, fee_pct)

    existing = db.query(Payment).filter(Payment.razorpay_payment_id == payment_id).first()
    if not existing:
        db.add(Payment(
            id=str(uuid.uuid4()),
            booking_id=b.id,
            user_id=b.user_id,
            salon_id=b.salon_id,
            amount=service_amount,
            currency=settings.RAZORPAY_CURRENCY,
            status="captured",
            payment_method=payment_method,
            razorpay_order_id=order_id or "",
            razorpay_payment_id=payment_id,
            platform_fee=platform_fee,
            salon_amount=salon_amount,
            fee_percentage=fee_pct,
            captured_at=datetime.now(timezone.utc),
        ))

    if b.status in (BookingStatus.CANCELLED, BookingStatus.REFUND_INITIATED, BookingStatus.REFUNDED, BookingStatus.COMPLETED):
        # A capture that lands after the booking left the payable path is kept for a manual refund.
        log_audit(db, actor_user_id=actor, action="late_capture", entity_type="booking", entity_id=b.id,
                  details={"order_id": order_id, "payment_id": payment_id, "booking_status": b.status})
        db.commit()
        logger.error("Capture %s arrived for booking %s in status %s", payment_id, b.id, b.status)
        return False

    penalty_service.mark_pending_paid(db, b.user_id, b.id)

    b.status = BookingStatus.CONFIRMED
    b.payment_id = payment_id
    b.payment_method = payment_method
    if order_id:
        b.razorpay_order_id = order_id
    log_audit(db, actor_user_id=actor, action="payment_captured", entity_type="booking", entity_id=b.id,
              details={"order_id": order_id, "payment_id": payment_id, "amount": service_amount,
                       "platform_fee": platform_fee, "salon_amount": salon_amount})
    db.commit()
    logger.info("Booking %s confirmed with payment %s (%s)", b.id, payment_id, actor)

    send_payment_receipt(db, user_id=b.user_id, booking_id=b.id, payment_id=payment_id,
                         amount=service_amount, salon_name=b.salon_name, service_name=b.service_name)
    return True


# ---------------------------------------------------------------------------
# Checkout callback verification
# ---------------------------------------------------------------------------

def verify_payment(db: Session, *, order_id: str, payment_id: str, signature: str, booking_id: str | None) -> dict:
    if not settings.RAZORPAY_KEY_SECRET:
        raise GatewayNotConfigured("Payment gateway not configured")
    logger.info("Verifying payment %s for order %s", payment_id, order_id)

    if not verify_payment_signature(settings.RAZORPAY_KEY_SECRET, order_id, payment_id, signature):
        logger.error("Signature verification failed for order %s", order_id)
        raise ValueError("Payment verification failed")

    if booking_id:
        b = _get_booking(db, booking_id)
        if b.razorpay_order_id and b.razorpay_order_id != order_id:
            logger.error("Order %s does not belong to booking %s", order_id, b.id)
            raise ValueError("Payment verification failed")
        confirm_booking_payment(db, b, order_id=order_id, payment_id=payment_id, actor="verify")

    return {"success": True, "message": "Payment verified successfully", "payment_id": payment_id}


# ---------------------------------------------------------------------------
# Reconciliation of dismissed / abandoned checkouts
# ---------------------------------------------------------------------------

PENDING_PAYMENT_STATUSES = ("created", "authorized", "pending")


def reconcile_order(db: Session, *, booking_id: str | None, order_id: str | None) -> dict:
    """Ask Razorpay for the authoritative state of an order.

    Returns ``captured`` (booking confirmed), ``pending`` (an attempt is still
    in flight, nothing changes) or ``cancelled``/``failed``.
    """
    if not booking_id or not order_id:
        raise ValueError("booking_id and razorpay_order_id are required")
    b = _get_booking(db, booking_id)

    if b.payment_id and b.status == BookingStatus.CONFIRMED:
        return {"status": "captured", "payment_id": b.payment_id}

    data = razorpay_client().fetch_order_payments(order_id)
    items = data.get("items") or []
    if not items:
        return {"status": "cancelled", "payments_count": 0}

    captured = next((p for p in items if p.get("status") == "captured" or p.get("captured") is True), None)
    if captured:
        payment_id = str(captured.get("id"))
        confirm_booking_payment(db, b, order_id=order_id, payment_id=payment_id,
                                payment_method=captured.get("method") or "razorpay", actor="reconcile")
        return {"status": "captured", "payment_id": payment_id}

    last_status = items[0].get("status")
    if any(p.get("status") in PENDING_PAYMENT_STATUSES for p in items):
        # e.g. UPI collect still "in process"; never fail this, the capture may land later
        return {"status": "pending", "payments_count": len(items), "last_payment_status": last_status}

    if b.status == BookingStatus.PENDING_PAYMENT:
        b.status = BookingStatus.PAYMENT_FAILED
        log_audit(db, actor_user_id="reconcile", action="payment_failed", entity_type="booking", entity_id=b.id,
                  details={"order_id": order_id, "last_payment_status": last_status})
        db.commit()
    return {"status": "failed", "payments_count": len(items), "last_payment_status": last_status}


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

def handle_webhook(db: Session, body: bytes, signature: str | None) -> dict:
    secret = settings.RAZORPAY_WEBHOOK_SECRET or settings.RAZORPAY_KEY_SECRET
    if not secret:
        raise GatewayNotConfigured("Webhook secret not configured")
    if not signature:
        logger.warning("Webhook without signature rejected")
        raise PermissionError("Signature required")
    if not verify_webhook_signature(secret, body, signature):
        logger.error("Invalid webhook signature")
        raise PermissionError("Invalid signature")

    payload = json.loads(body.decode("utf-8") or "{}")
    event = str(payload.get("event") or "")
    entities = payload.get("payload") or {}
    payment = (entities.get("payment") or {}).get("entity") or {}
    refund = (entities.get("refund") or {}).get("entity") or {}
    event_id = payment.get("id") or refund.get("id") or ((entities.get("order") or {}).get("entity") or {}).get("id")

    log = WebhookLog(id=str(uuid.uuid4()), event_type=event, event_id=event_id,
                     payload_json=json.dumps(payload, ensure_ascii=False), status="received")
    db.add(log)
    db.commit()
    logger.info("Razorpay webhook %s (%s)", event, event_id)

    try:
        result = _dispatch_webhook(db, event, payment, refund)
    except Exception as e:
        db.rollback()
        log.status = "failed"
        log.error = str(e)
        db.commit()
        raise
    log.status = "processed"
    db.commit()
    return {"received": True, **result}


def _dispatch_webhook(db: Session, event: str, payment: dict, refund: dict) -> dict:
    if event in ("payment.captured", "order.paid"):
        booking_id = (payment.get("notes") or {}).get("booking_id")
        if not payment or not booking_id:
            logger.warning("Webhook %s without booking_id in notes, skipping", event)
            return {"warning": "No booking_id"}
        b = _get_booking(db, booking_id)
        confirmed = confirm_booking_payment(db, b, order_id=str(payment.get("order_id") or ""),
                                            payment_id=str(payment["id"]),
                                            payment_method=payment.get("method") or "razorpay", actor="razorpay")
        return {"already_processed": not confirmed}

    if event == "payment.failed":
        booking_id = (payment.get("notes") or {}).get("booking_id")
        b = db.execute(booking_for_update(booking_id)).scalar_one_or_none() if booking_id else None
        if b and b.status == BookingStatus.PENDING_PAYMENT:
            b.status = BookingStatus.PAYMENT_FAILED
            log_audit(db, actor_user_id="razorpay", action="payment_failed", entity_type="booking", entity_id=b.id,
                      details={"error": payment.get("error_description")})
            db.commit()
        return {}

    if event == "refund.processed":
        p = db.query(Payment).filter(Payment.razorpay_payment_id == refund.get("payment_id")).first()
        if p:
            p.status = "refunded"
            p.refund_id = refund.get("id") or p.refund_id
            b = db.execute(booking_for_update(p.booking_id)).scalar_one_or_none()
            if b and b.status == BookingStatus.REFUND_INITIATED:
                b.status = BookingStatus.REFUNDED
            db.commit()
        return {}

    # payment.authorized and anything else: logged only, confirmation waits for capture
    return {"ignored": True}


# ---------------------------------------------------------------------------
# Refunds to the original payment method
# ---------------------------------------------------------------------------

def refund_to_source(db: Session, b: Booking, amount: Decimal, *, actor_user_id: str, reason: str) -> dict:
    """Refund ``amount`` through Razorpay when the booking has a gateway payment.

    Without a payment id the refund is flagged for manual processing and the
    booking moves to ``refund_initiated``. Commits; raises RazorpayError
    (nothing changed) when the gateway rejects the refund.
    """
    amount = Decimal(amount)
    log_audit(db, actor_user_id=actor_user_id, action="refund_initiated", entity_type="booking", entity_id=b.id,
              details={"previous_status": b.status, "refund_amount": amount, "reason": reason})

    refund_id = None
    if b.payment_id:
        logger.info("Processing Razorpay refund of %s for payment %s", amount, b.payment_id)
        resp = razorpay_client().refund_payment(
            payment_id=b.payment_id,
            amount_paise=to_paise(amount),
            notes={"booking_id": b.id, "reason": reason},
        )
        refund_id = resp.get("id")
        refund_status = resp.get("status") or "processed"
        p = db.query(Payment).filter(Payment.razorpay_payment_id == b.payment_id).first()
        if p:
            p.status = "refunded"
            p.refund_id = refund_id
        b.status = BookingStatus.REFUNDED
    else:
        logger.info("No payment_id for booking %s, manual refund required", b.id)
        refund_status = "manual_required"
        b.status = BookingStatus.REFUND_INITIATED

    log_audit(db, actor_user_id=actor_user_id, action="refund_recorded", entity_type="booking", entity_id=b.id,
              details={"refund_id": refund_id, "refund_status": refund_status, "refund_amount": amount})
    db.commit()
    return {"refund_id": refund_id, "refund_status": refund_status, "booking_status": b.status}


def admin_refund(db: Session, *, booking_id: str | None, refund_amount=None, actor_user_id: str) -> dict:
    b = _get_booking(db, booking_id)
    if b.status not in BookingStatus.REFUNDABLE:
        raise ValueError(f'Booking status "{b.status}" is not eligible for refund')

    price = Decimal(b.service_price)
    amount = Decimal(str(refund_amount)) if refund_amount not in (None, "") else price
    if amount <= 0 or amount > price:
        raise ValueError("Refund amount must be between 0 and the service price")

    result = refund_to_source(db, b, amount, actor_user_id=actor_user_id, reason="Customer requested cancellation")
    processed = bool(b.payment_id)
    send_refund_notification(
        db,
        user_id=b.user_id,
        booking_id=b.id,
        salon_name=b.salon_name,
        service_name=b.service_name,
        refund_amount=amount,
        refund_status="processed" if processed else "initiated",
        refund_id=result["refund_id"],
        estimated_days=settings.REFUND_ESTIMATED_DAYS,
    )
    return {
        "success": True,
        "message": "Refund processed successfully" if processed else "Refund initiated - manual processing required",
        "refund_id": result["refund_id"],
        "refund_status": result["refund_status"],
        "refund_amount": str(amount),
        "estimated_days": settings.REFUND_ESTIMATED_DAYS,
        "booking_id": b.id,
    }


# ---------------------------------------------------------------------------
# Wallet top-up
# ---------------------------------------------------------------------------

TOPUP_NOTE_TYPE = "wallet_topup"


def create_topup_order(db: Session, *, user_id: str, amount) -> dict:
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError("Invalid amount")
    if not settings.WALLET_TOPUP_MIN <= amount <= settings.WALLET_TOPUP_MAX:
        raise ValueError(f"Amount must be between ₹{settings.WALLET_TOPUP_MIN} and ₹{settings.WALLET_TOPUP_MAX}")

    currency = settings.RAZORPAY_CURRENCY
    order = razorpay_client().create_order(
        amount_paise=to_paise(amount),
        currency=currency,
        receipt=f"wallet_topup_{int(datetime.now(timezone.utc).timestamp() * 1000)}",
        notes={"type": TOPUP_NOTE_TYPE, "user_id": user_id, "amount": str(amount)},
    )
    order_id = str(order.get("id") or "")
    if not order_id:
        raise RazorpayError(f"Razorpay order response missing id: {order}")

    log_audit(db, actor_user_id=user_id, action="wallet_topup_order_created", entity_type="wallet", entity_id=user_id,
              details={"order_id": order_id, "amount": amount})
    db.commit()
    logger.info("Wallet top-up order %s created for user %s amount %s", order_id, user_id, amount)
    return {
        "orderId": order_id,
        "keyId": settings.RAZORPAY_KEY_ID,
        "amount": int(order.get("amount") or to_paise(amount)),
        "currency": order.get("currency") or currency,
    }


def verify_topup(db: Session, *, user_id: str, order_id: str, payment_id: str, signature: str) -> dict:
    """Credit the wallet for a top-up checkout.

    The amount and owner come from the Razorpay order, not the request. A
    payment id is credited once; a repeat call returns the current balance.
    """
    if not settings.RAZORPAY_KEY_SECRET:
        raise GatewayNotConfigured("Payment gateway not configured")
    if not verify_payment_signature(settings.RAZORPAY_KEY_SECRET, order_id, payment_id, signature):
        logger.error("Top-up signature verification failed for order %s", order_id)
        raise ValueError("Payment verification failed")

    order = razorpay_client().fetch_order(order_id)
    notes = order.get("notes") or {}
    if notes.get("type") != TOPUP_NOTE_TYPE or notes.get("user_id") != user_id:
        logger.error("Order %s is not a wallet top-up for user %s", order_id, user_id)
        raise ValueError("Payment verification failed")
    amount = (Decimal(int(order.get("amount") or 0)) / 100).quantize(Decimal("0.01"))

    wallet = wallet_service.get_or_create_wallet(db, user_id, for_update=True)
    if wallet_service.find_transaction(db, user_id, reference_id=payment_id, type="credit"):
        logger.info("Top-up payment %s already credited", payment_id)
        return {"success": True, "message": "Wallet already credited", "payment_id": payment_id,
                "new_balance": str(wallet.balance)}

    wallet_service.add_credits(db, user_id, amount, "manual", description="Wallet top-up via Razorpay",
                               reference_id=payment_id)
    log_audit(db, actor_user_id=user_id, action="wallet_topup", entity_type="wallet", entity_id=wallet.id,
              details={"order_id": order_id, "payment_id": payment_id, "amount": amount})
    db.commit()
    logger.info("Wallet %s topped up by %s with payment %s", wallet.id, amount, payment_id)
    return {"success": True, "message": "Wallet credited successfully", "payment_id": payment_id,
            "new_balance": str(wallet.balance)}
