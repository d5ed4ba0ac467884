from pydantic import BaseModel
from typing import Literal, Optional


class CancelBookingRequest(BaseModel):
    refund_method: Literal["wallet", "original"] = "wallet"
    reason: Optional[str] = ""


class RefundQuoteOut(BaseModel):
    percentage: int
    refundAmount: str  # rupees, whole after rounding
    deductionAmount: str
    policyLabel: str
    hoursRemaining: int
    minutesRemaining: int
    isPastBooking: bool


class WaivePenaltyRequest(BaseModel):
    reason: str
