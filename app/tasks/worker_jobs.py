import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.booking import Booking, BookingStatus
from app.services import payment_service
from app.services.audit_service import log_audit
from app.services.email_service import process_pending_emails
from app.services.razorpay_client import RazorpayError

logger = logging.getLogger(__name__)


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except (ProgrammingError, OperationalError):
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def reconcile_stale_orders(db: Session | None = None, now: datetime | None = None, limit: int = 100) -> dict:
    """Settle bookings whose checkout was abandoned without a verify or webhook.

    Picks ``pending_payment`` bookings that got an order more than
    STALE_ORDER_MINUTES ago and asks Razorpay what happened to it.
    """
    own_session = db is None
    db = db or SessionLocal()
    try:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=settings.STALE_ORDER_MINUTES)
        try:
            stale = (
                db.query(Booking)
                .filter(
                    Booking.status == BookingStatus.PENDING_PAYMENT,
                    Booking.razorpay_order_id.is_not(None),
                    Booking.updated_at < cutoff,
                )
                .order_by(Booking.updated_at.asc())
                .limit(limit)
                .all()
            )
        except (ProgrammingError, OperationalError):
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}

        counts: dict[str, int] = {}
        for b in stale:
            try:
                result = payment_service.reconcile_order(db, booking_id=b.id, order_id=b.razorpay_order_id)
            except payment_service.GatewayNotConfigured:
                return {"skipped": True, "reason": "gateway_not_configured"}
            except RazorpayError as e:
                logger.warning("Reconcile of booking %s failed: %s", b.id, e)
                db.rollback()
                b.updated_at = now
                db.commit()
                counts["error"] = counts.get("error", 0) + 1
                continue
            status = result["status"]
            if status == "cancelled" and b.status == BookingStatus.PENDING_PAYMENT:
                # no attempt was ever made on the order; the checkout is abandoned
                b.status = BookingStatus.PAYMENT_FAILED
                log_audit(db, actor_user_id="reconcile", action="checkout_abandoned", entity_type="booking",
                          entity_id=b.id, details={"order_id": b.razorpay_order_id})
                db.commit()
            elif status == "pending":
                # still in flight; requeue behind the other stale orders
                b.updated_at = now
                db.commit()
            counts[status] = counts.get(status, 0) + 1
        if stale:
            logger.info("Reconciled %s stale orders: %s", len(stale), counts)
        return {"checked": len(stale), **counts}
    finally:
        if own_session:
            db.close()
