from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_roles, to_http_error
from app.db.session import get_db
from app.models.cancellation import CancellationPenalty
from app.models.user import User
from app.schemas.booking import WaivePenaltyRequest
from app.services import penalty_service
from app.services.notification_service import send_penalty_waived_notification

router = APIRouter(tags=["penalties"])


def _penalty_out(p: CancellationPenalty) -> dict:
    return {
        "id": p.id,
        "bookingId": p.booking_id,
        "salonName": p.salon_name,
        "serviceName": p.service_name,
        "originalServicePrice": str(p.original_service_price),
        "penaltyAmount": str(p.penalty_amount),
        "penaltyPercentage": p.penalty_percentage,
        "isPaid": p.is_paid,
        "isWaived": p.is_waived,
        "waivedReason": p.waived_reason,
    }


@router.get("/penalties/pending")
def my_pending_penalties(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows = penalty_service.pending_penalties(db, user.id)
    return {
        "total": str(penalty_service.total_pending(db, user.id)),
        "penalties": [_penalty_out(p) for p in rows],
    }


@router.post("/admin/penalties/{penalty_id}/waive")
def waive_penalty(penalty_id: str, body: WaivePenaltyRequest, db: Session = Depends(get_db),
                  user: User = Depends(require_roles("admin"))):
    try:
        p = penalty_service.waive(db, penalty_id, user.id, body.reason)
    except (LookupError, ValueError) as e:
        raise to_http_error(e)
    send_penalty_waived_notification(
        db, user_id=p.user_id, penalty_amount=p.penalty_amount, salon_name=p.salon_name, waived_reason=p.waived_reason,
    )
    return _penalty_out(p)


@router.post("/admin/penalties/{penalty_id}/mark-paid")
def mark_penalty_paid(penalty_id: str, db: Session = Depends(get_db), user: User = Depends(require_roles("admin"))):
    try:
        p = penalty_service.mark_paid(db, penalty_id, user.id)
    except (LookupError, ValueError) as e:
        raise to_http_error(e)
    return _penalty_out(p)
