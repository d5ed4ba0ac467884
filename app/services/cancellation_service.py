import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.booking import Booking, BookingStatus
from app.models.user import User
from app.services import penalty_service, wallet_service
from app.services.audit_service import log_audit
from app.services.notification_service import send_refund_notification
from app.services.payment_service import booking_for_update, refund_to_source
from app.services.refund_calculator import RefundComputation, calculate_refund

logger = logging.getLogger(__name__)

REFUND_METHODS = ("wallet", "original")


def _load_owned_booking(db: Session, booking_id: str, user: User, for_update: bool = False) -> Booking:
    if for_update:
        b = db.execute(booking_for_update(booking_id)).scalar_one_or_none()
    else:
        b = db.get(Booking, booking_id)
    if not b:
        raise LookupError("Booking not found")
    if b.user_id != user.id and user.role != "admin":
        raise PermissionError("Not your booking")
    return b


def refund_quote(db: Session, booking_id: str, user: User, now: datetime | None = None) -> RefundComputation:
    b = _load_owned_booking(db, booking_id, user)
    return calculate_refund(b.booking_date, b.booking_time, b.service_price, now=now)


def cancel_booking(db: Session, booking_id: str, user: User, refund_method: str = "wallet",
                   reason: str = "", now: datetime | None = None) -> dict:
    """Cancel a booking and settle the refund the policy allows.

    Prepaid bookings are refunded either instantly to the wallet or through
    the gateway. Unpaid pay-at-salon bookings have nothing to refund; their
    deduction is recorded as a penalty collected with the next booking.
    """
    if refund_method not in REFUND_METHODS:
        raise ValueError("refund_method must be 'wallet' or 'original'")
    b = _load_owned_booking(db, booking_id, user, for_update=True)
    if b.status not in BookingStatus.CANCELLABLE:
        raise ValueError(f'Booking status "{b.status}" cannot be cancelled')

    quote = calculate_refund(b.booking_date, b.booking_time, b.service_price, now=now)
    if quote.is_past_booking:
        raise ValueError("Booking time has already passed")

    prepaid = bool(b.payment_id)
    previous_status = b.status
    refund_status = None
    refund_id = None
    penalty_id = None

    if not prepaid:
        if previous_status == BookingStatus.UPCOMING and quote.deduction_amount > 0:
            penalty_id = penalty_service.create_penalty(db, b, quote.deduction_amount, 100 - quote.percentage).id
        b.status = BookingStatus.CANCELLED
        applied_method = None
        refund_amount = Decimal("0")
    elif refund_method == "wallet" or quote.refund_amount <= 0:
        applied_method = "wallet" if quote.refund_amount > 0 else None
        refund_amount = quote.refund_amount
        if refund_amount > 0:
            wallet_service.add_credits(
                db, b.user_id, refund_amount, "refund",
                description=f"Refund for cancelled booking at {b.salon_name}",
                reference_id=b.id,
            )
            refund_status = "completed"
        b.status = BookingStatus.CANCELLED
    else:
        applied_method = "original"
        refund_amount = quote.refund_amount

    log_audit(db, actor_user_id=user.id, action="booking_cancelled", entity_type="booking", entity_id=b.id,
              details={"previous_status": previous_status, "refund_method": applied_method, "reason": reason,
                       **quote.as_dict()})

    if applied_method == "original":
        # commits together with the audit row above
        result = refund_to_source(db, b, refund_amount, actor_user_id=user.id, reason=reason or "Customer requested cancellation")
        refund_id = result["refund_id"]
        refund_status = "initiated" if result["refund_status"] == "manual_required" else "processed"
    else:
        db.commit()
    logger.info("Booking %s cancelled by %s: %s%% refund %s via %s", b.id, user.id, quote.percentage, refund_amount, applied_method)

    if refund_status:
        send_refund_notification(
            db,
            user_id=b.user_id,
            booking_id=b.id,
            salon_name=b.salon_name,
            service_name=b.service_name,
            refund_amount=refund_amount,
            refund_status=refund_status,
            refund_id=refund_id,
            estimated_days=settings.REFUND_ESTIMATED_DAYS,
        )

    return {
        "bookingId": b.id,
        "status": b.status,
        "refundMethod": applied_method,
        "refundStatus": refund_status,
        "refundId": refund_id,
        "penaltyId": penalty_id,
        "refund": quote.as_dict(),
    }
