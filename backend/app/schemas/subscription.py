from pydantic import BaseModel
from typing import Optional


class CheckoutRequest(BaseModel):
    price_id: Optional[str] = None


class CheckoutSuccessRequest(BaseModel):
    session_id: Optional[str] = None


class CancelSubscriptionRequest(BaseModel):
    reason: Optional[str] = None
    feedback: Optional[str] = None
    immediate: bool = False
