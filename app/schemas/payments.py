from decimal import Decimal

from pydantic import BaseModel, Field
from typing import Optional, Dict


class CreateOrderRequest(BaseModel):
    booking_id: Optional[str] = None
    # Rupees. Advisory: the order is always raised for the booking's stored price.
    amount: Optional[Decimal] = None
    currency: str = "INR"
    receipt: Optional[str] = None
    notes: Dict[str, str] = Field(default_factory=dict)


class CreateOrderOut(BaseModel):
    orderId: str
    keyId: str
    amount: int  # paise
    currency: str


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    booking_id: Optional[str] = None


class ReconcileRequest(BaseModel):
    booking_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None


class AdminRefundRequest(BaseModel):
    booking_id: str
    # Rupees; defaults to the full service price.
    refund_amount: Optional[Decimal] = None


class WalletTopupOrderRequest(BaseModel):
    amount: Decimal  # rupees


class WalletTopupVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
