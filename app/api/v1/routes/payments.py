from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import require_roles, to_http_error
from app.db.session import get_db
from app.models.user import User
from app.schemas.payments import (
    AdminRefundRequest,
    CreateOrderOut,
    CreateOrderRequest,
    ReconcileRequest,
    VerifyPaymentRequest,
)
from app.services import payment_service
from app.services.razorpay_client import RazorpayError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/payments/razorpay/orders", response_model=CreateOrderOut)
def create_razorpay_order(body: CreateOrderRequest, db: Session = Depends(get_db)):
    try:
        return payment_service.create_order(
            db,
            booking_id=body.booking_id,
            amount=body.amount,
            currency=body.currency,
            receipt=body.receipt,
            notes=body.notes,
        )
    except RazorpayError as e:
        logger.error("Razorpay order creation failed: %s", e)
        raise HTTPException(status_code=502, detail=e.description or "Failed to create order")
    except (ValueError, LookupError, payment_service.GatewayNotConfigured) as e:
        raise to_http_error(e)


@router.post("/payments/razorpay/verify")
def verify_razorpay_payment(body: VerifyPaymentRequest, db: Session = Depends(get_db)):
    try:
        return payment_service.verify_payment(
            db,
            order_id=body.razorpay_order_id,
            payment_id=body.razorpay_payment_id,
            signature=body.razorpay_signature,
            booking_id=body.booking_id,
        )
    except ValueError as e:
        # checkout clients read {success, error} rather than FastAPI's detail
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except (LookupError, payment_service.GatewayNotConfigured) as e:
        raise to_http_error(e)


@router.post("/payments/razorpay/reconcile")
def reconcile_razorpay_order(body: ReconcileRequest, db: Session = Depends(get_db)):
    """Authoritative status of an order whose checkout was dismissed."""
    try:
        return payment_service.reconcile_order(db, booking_id=body.booking_id, order_id=body.razorpay_order_id)
    except RazorpayError as e:
        logger.error("Razorpay order lookup failed: %s", e)
        raise HTTPException(status_code=502, detail=e.description or "Failed to fetch payments")
    except (ValueError, LookupError, payment_service.GatewayNotConfigured) as e:
        raise to_http_error(e)


@router.post("/webhooks/razorpay")
async def razorpay_webhook(req: Request, db: Session = Depends(get_db)):
    # signature covers the raw bytes, so read them before any JSON parsing
    body = await req.body()
    try:
        return payment_service.handle_webhook(db, body, req.headers.get("x-razorpay-signature"))
    except PermissionError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (ValueError, LookupError, payment_service.GatewayNotConfigured) as e:
        raise to_http_error(e)


@router.post("/admin/payments/razorpay/refund")
def admin_razorpay_refund(body: AdminRefundRequest, db: Session = Depends(get_db),
                          user: User = Depends(require_roles("admin"))):
    try:
        return payment_service.admin_refund(
            db, booking_id=body.booking_id, refund_amount=body.refund_amount, actor_user_id=user.id,
        )
    except RazorpayError as e:
        logger.error("Razorpay refund failed for booking %s: %s", body.booking_id, e)
        raise HTTPException(status_code=502, detail=e.description or "Refund failed")
    except (ValueError, LookupError, payment_service.GatewayNotConfigured) as e:
        raise to_http_error(e)
