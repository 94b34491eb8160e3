from sqlalchemy import String, Integer, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from artisan_booking.db.session import Base
from artisan_booking.db.types import UTCDateTime


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)

    customer_id: Mapped[str] = mapped_column(String(36), index=True)
    artisan_id: Mapped[str] = mapped_column(String(36), index=True)

    service_ref: Mapped[str] = mapped_column(String(64), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    urgency: Mapped[str] = mapped_column(String(16), default="normal")  # normal, urgent, emergency
    scheduled_for: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    pricing_model: Mapped[str] = mapped_column(String(32))
    price_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    estimated_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    agreed_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    final_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    platform_fee: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    payment_status: Mapped[str] = mapped_column(String(12), default="unpaid")

    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    payment_released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_photos: Mapped[list | None] = mapped_column(JSON, nullable=True)
    materials_used: Mapped[list | None] = mapped_column(JSON, nullable=True)
    work_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # hours

    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(12), nullable=True)  # customer, artisan, admin, system

    payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    escrow_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    negotiation = relationship("Negotiation", uselist=False, back_populates="booking", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Booking {self.booking_number} {self.status}/{self.payment_status}>"
