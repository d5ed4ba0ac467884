import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, to_http_error
from app.db.session import get_db
from app.models.user import User
from app.schemas.payments import CreateOrderOut, WalletTopupOrderRequest, WalletTopupVerifyRequest
from app.services import payment_service, wallet_service
from app.services.razorpay_client import RazorpayError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wallet"])


@router.get("/wallet")
def get_wallet(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    w = wallet_service.get_or_create_wallet(db, user.id)
    db.commit()
    return {
        "balance": str(w.balance),
        "totalEarned": str(w.total_earned),
        "totalSpent": str(w.total_spent),
    }


@router.get("/wallet/transactions")
def get_wallet_transactions(limit: int = 50, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        {
            "id": t.id,
            "amount": str(t.amount),
            "type": t.type,
            "category": t.category,
            "description": t.description,
            "referenceId": t.reference_id,
            "createdAt": t.created_at.isoformat() if t.created_at else None,
        }
        for t in wallet_service.list_transactions(db, user.id, limit=min(max(limit, 1), 200))
    ]


@router.post("/wallet/topup/orders", response_model=CreateOrderOut)
def create_topup_order(body: WalletTopupOrderRequest, db: Session = Depends(get_db),
                       user: User = Depends(get_current_user)):
    try:
        return payment_service.create_topup_order(db, user_id=user.id, amount=body.amount)
    except RazorpayError as e:
        logger.error("Top-up order creation failed for user %s: %s", user.id, e)
        raise HTTPException(status_code=502, detail=e.description or "Failed to create payment order")
    except (ValueError, payment_service.GatewayNotConfigured) as e:
        raise to_http_error(e)


@router.post("/wallet/topup/verify")
def verify_topup(body: WalletTopupVerifyRequest, db: Session = Depends(get_db),
                 user: User = Depends(get_current_user)):
    try:
        return payment_service.verify_topup(
            db,
            user_id=user.id,
            order_id=body.razorpay_order_id,
            payment_id=body.razorpay_payment_id,
            signature=body.razorpay_signature,
        )
    except ValueError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except RazorpayError as e:
        logger.error("Top-up order lookup failed for %s: %s", body.razorpay_order_id, e)
        raise HTTPException(status_code=502, detail=e.description or "Failed to verify payment")
    except payment_service.GatewayNotConfigured as e:
        raise to_http_error(e)
