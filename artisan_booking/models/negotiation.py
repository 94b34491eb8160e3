from sqlalchemy import String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from artisan_booking.db.session import Base
from artisan_booking.db.types import UTCDateTime


class Negotiation(Base):
    __tablename__ = "negotiations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(ForeignKey("bookings.id"), unique=True, index=True)
    customer_id: Mapped[str] = mapped_column(String(36))
    artisan_id: Mapped[str] = mapped_column(String(36))
    status: Mapped[str] = mapped_column(String(12), default="active", index=True)  # active, agreed, rejected, expired
    initial_price: Mapped[int] = mapped_column(Integer)
    agreed_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_rounds: Mapped[int] = mapped_column(Integer, default=3)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    booking = relationship("Booking", back_populates="negotiation")
    rounds = relationship(
        "NegotiationRound",
        order_by="NegotiationRound.round_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def last_round(self):
        return self.rounds[-1] if self.rounds else None


class NegotiationRound(Base):
    __tablename__ = "negotiation_rounds"
    __table_args__ = (UniqueConstraint("negotiation_id", "round_number", name="uq_negotiation_round"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    negotiation_id: Mapped[str] = mapped_column(ForeignKey("negotiations.id"), index=True)
    round_number: Mapped[int] = mapped_column(Integer)
    proposed_by: Mapped[str] = mapped_column(String(12))  # customer, artisan
    amount: Mapped[int] = mapped_column(Integer)
    message: Mapped[str] = mapped_column(String(500), default="")
    response: Mapped[str] = mapped_column(String(12), default="pending")  # pending, accepted, countered, rejected
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
