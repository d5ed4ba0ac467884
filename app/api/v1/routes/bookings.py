from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, to_http_error
from app.db.session import get_db
from app.models.booking import Booking
from app.models.user import User
from app.schemas.booking import CancelBookingRequest, RefundQuoteOut
from app.services import cancellation_service
from app.services.razorpay_client import RazorpayError

router = APIRouter(tags=["bookings"])


@router.get("/bookings")
def list_my_bookings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows = db.query(Booking).filter(Booking.user_id == user.id).order_by(Booking.created_at.desc()).all()
    return [_booking_out(b) for b in rows]


@router.get("/bookings/{booking_id}")
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = db.get(Booking, booking_id)
    if not b:
        raise HTTPException(status_code=404, detail="Booking not found")
    if b.user_id != user.id and user.role != "admin":
        raise HTTPException(status_code=403, detail="Not your booking")
    return _booking_out(b)


@router.get("/bookings/{booking_id}/refund-quote", response_model=RefundQuoteOut)
def get_refund_quote(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """What the customer would get back if they cancelled right now."""
    try:
        return cancellation_service.refund_quote(db, booking_id, user).as_dict()
    except (LookupError, PermissionError, ValueError) as e:
        raise to_http_error(e)


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: str, body: CancelBookingRequest, db: Session = Depends(get_db),
                   user: User = Depends(get_current_user)):
    try:
        return cancellation_service.cancel_booking(
            db, booking_id, user, refund_method=body.refund_method, reason=body.reason or "",
        )
    except RazorpayError as e:
        raise HTTPException(status_code=502, detail=e.description or "Refund failed")
    except (LookupError, PermissionError, ValueError) as e:
        raise to_http_error(e)


def _booking_out(b: Booking) -> dict:
    return {
        "id": b.id,
        "salonId": b.salon_id,
        "salonName": b.salon_name,
        "serviceName": b.service_name,
        "stylistName": b.stylist_name,
        "bookingDate": b.booking_date,
        "bookingTime": b.booking_time,
        "servicePrice": str(b.service_price),
        "status": b.status,
        "paymentId": b.payment_id,
        "paymentMethod": b.payment_method,
    }
