from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class CancellationPenalty(Base):
    __tablename__ = "cancellation_penalties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)

    salon_name: Mapped[str] = mapped_column(String(200), default="")
    service_name: Mapped[str] = mapped_column(String(200), default="")
    original_service_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    penalty_percentage: Mapped[int] = mapped_column(Integer, default=0)

    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    is_waived: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    waived_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    waived_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    waived_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
