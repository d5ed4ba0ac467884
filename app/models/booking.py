from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class BookingStatus:
    UPCOMING = "upcoming"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"
    REFUND_INITIATED = "refund_initiated"
    REFUNDED = "refunded"

    ALL = (UPCOMING, CONFIRMED, COMPLETED, CANCELLED, PENDING_PAYMENT, PAYMENT_FAILED, REFUND_INITIATED, REFUNDED)
    # pending_payment/payment_failed allow a retried checkout; upcoming covers pay-later bookings
    PAYABLE = (PENDING_PAYMENT, PAYMENT_FAILED, UPCOMING)
    CANCELLABLE = (UPCOMING, CONFIRMED, PENDING_PAYMENT)
    REFUNDABLE = (CONFIRMED, UPCOMING, PENDING_PAYMENT)


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    salon_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    salon_name: Mapped[str] = mapped_column(String(200), default="")
    service_name: Mapped[str] = mapped_column(String(200), default="")
    stylist_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    booking_date: Mapped[str] = mapped_column(String(10))  # YYYY-MM-DD, salon local
    booking_time: Mapped[str] = mapped_column(String(10))  # HH:MM, salon local
    service_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    status: Mapped[str] = mapped_column(String(30), default=BookingStatus.PENDING_PAYMENT, index=True)

    payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)          # razorpay pay_...
    razorpay_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)      # razorpay, upi, wallet, salon

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))
