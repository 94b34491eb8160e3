from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from artisan_booking.db.session import Base
from artisan_booking.db.types import UTCDateTime


class Escrow(Base):
    """Funds held by the platform for one booking until release or refund."""
    __tablename__ = "escrows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    payment_id: Mapped[str] = mapped_column(String(36), index=True)
    customer_id: Mapped[str] = mapped_column(String(36), index=True)
    artisan_id: Mapped[str] = mapped_column(String(36), index=True)

    amount: Mapped[int] = mapped_column(Integer)
    platform_fee: Mapped[int] = mapped_column(Integer)
    artisan_amount: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(12), default="held", index=True)  # held, released, refunded, disputed
    held_at: Mapped[datetime] = mapped_column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    auto_release_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    release_type: Mapped[str | None] = mapped_column(String(8), nullable=True)  # manual, auto, admin
    released_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Escrow {self.booking_id} {self.amount} {self.status}>"
