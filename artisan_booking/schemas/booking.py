from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from artisan_booking.schemas.pricing import ServiceOffering, Selections


class BookingCreate(BaseModel):
    artisan_id: str
    offering: ServiceOffering
    selections: Selections = Field(default_factory=Selections)
    description: str = Field(default="", max_length=2000)
    scheduled_for: Optional[datetime] = None


class ReasonIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class PriceOfferIn(BaseModel):
    amount: int = Field(gt=0)
    message: str = Field(default="", max_length=500)


class CompleteJobIn(BaseModel):
    notes: str
    photos: List[str]
    materials: List[dict] = Field(default_factory=list)
    work_duration: Optional[int] = Field(default=None, ge=0)  # hours; derived from start time if omitted


class BookingOut(BaseModel):
    id: str
    booking_number: str
    status: str
    payment_status: str
    pricing_model: str
    estimated_price: Optional[int] = None
    agreed_price: Optional[int] = None
    final_price: Optional[int] = None
    platform_fee: int = 0
    total_amount: int = 0
    expires_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    escrow_id: Optional[str] = None

    model_config = {"from_attributes": True}
