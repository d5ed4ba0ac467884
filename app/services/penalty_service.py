import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.cancellation import CancellationPenalty
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)


def pending_penalties(db: Session, user_id: str) -> list[CancellationPenalty]:
    return (
        db.query(CancellationPenalty)
        .filter(
            CancellationPenalty.user_id == user_id,
            CancellationPenalty.is_paid.is_(False),
            CancellationPenalty.is_waived.is_(False),
        )
        .order_by(CancellationPenalty.created_at.asc())
        .all()
    )


def total_pending(db: Session, user_id: str) -> Decimal:
    return sum((Decimal(p.penalty_amount) for p in pending_penalties(db, user_id)), Decimal("0"))


def create_penalty(db: Session, booking: Booking, penalty_amount: Decimal, penalty_percentage: int) -> CancellationPenalty:
    penalty = CancellationPenalty(
        id=str(uuid.uuid4()),
        user_id=booking.user_id,
        booking_id=booking.id,
        salon_name=booking.salon_name,
        service_name=booking.service_name,
        original_service_price=booking.service_price,
        penalty_amount=penalty_amount,
        penalty_percentage=penalty_percentage,
    )
    db.add(penalty)
    logger.info("Penalty %s of %s created for booking %s", penalty.id, penalty_amount, booking.id)
    return penalty


def mark_pending_paid(db: Session, user_id: str, paid_booking_id: str) -> list[CancellationPenalty]:
    """Settle every outstanding penalty against a newly paid booking. Penalties are platform revenue."""
    now = datetime.now(timezone.utc)
    penalties = pending_penalties(db, user_id)
    for p in penalties:
        p.is_paid = True
        p.paid_at = now
        p.paid_booking_id = paid_booking_id
    if penalties:
        total = sum(Decimal(p.penalty_amount) for p in penalties)
        logger.info("Marked %s penalties as paid for user %s, total %s", len(penalties), user_id, total)
    return penalties


def mark_paid(db: Session, penalty_id: str, actor_user_id: str) -> CancellationPenalty:
    p = db.get(CancellationPenalty, penalty_id)
    if not p:
        raise LookupError("Penalty not found")
    if p.is_waived:
        raise ValueError("Penalty has been waived")
    if not p.is_paid:
        p.is_paid = True
        p.paid_at = datetime.now(timezone.utc)
        log_audit(db, actor_user_id=actor_user_id, action="penalty_marked_paid", entity_type="penalty", entity_id=p.id,
                  details={"amount": p.penalty_amount})
    db.commit()
    return p


def waive(db: Session, penalty_id: str, actor_user_id: str, reason: str) -> CancellationPenalty:
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("A reason is required to waive a penalty")
    p = db.get(CancellationPenalty, penalty_id)
    if not p:
        raise LookupError("Penalty not found")
    if p.is_paid:
        raise ValueError("Penalty is already paid")
    if p.is_waived:
        return p
    p.is_waived = True
    p.waived_at = datetime.now(timezone.utc)
    p.waived_by = actor_user_id
    p.waived_reason = reason[:500]
    log_audit(db, actor_user_id=actor_user_id, action="penalty_waived", entity_type="penalty", entity_id=p.id,
              details={"amount": p.penalty_amount, "reason": p.waived_reason})
    db.commit()
    return p
