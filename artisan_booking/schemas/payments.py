from pydantic import BaseModel
from typing import Optional


class PaymentInitRequest(BaseModel):
    booking_id: str
    email: str  # plain str to allow .local and other dev domains


class PaymentInitOut(BaseModel):
    reference: str
    authorization_url: str
    access_code: str = ""
    total_amount: int
    currency: str


class PaymentOut(BaseModel):
    reference: str
    booking_id: str
    status: str
    amount: int
    platform_fee: int
    total_amount: int
    currency: str
    failure_reason: Optional[str] = None

    model_config = {"from_attributes": True}
