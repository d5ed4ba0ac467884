from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    salon_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Service amount only, never including collected penalties
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(10), default="INR")
    status: Mapped[str] = mapped_column(String(20), default="captured")  # captured, refunded, failed
    payment_method: Mapped[str] = mapped_column(String(30), default="razorpay")

    razorpay_order_id: Mapped[str] = mapped_column(String(64), default="")
    razorpay_payment_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    refund_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    salon_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    fee_percentage: Mapped[int] = mapped_column(Integer, default=8)

    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
