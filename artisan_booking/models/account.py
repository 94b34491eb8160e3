from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column
from artisan_booking.db.session import Base


class ArtisanAccount(Base):
    __tablename__ = "artisan_accounts"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    total_earnings: Mapped[int] = mapped_column(Integer, default=0)
    total_jobs_completed: Mapped[int] = mapped_column(Integer, default=0)
    total_booking_requests: Mapped[int] = mapped_column(Integer, default=0)
    total_accepted_bookings: Mapped[int] = mapped_column(Integer, default=0)
    acceptance_rate: Mapped[int] = mapped_column(Integer, default=0)  # percent
    response_time_minutes: Mapped[int] = mapped_column(Integer, default=0)  # running average
    payout_recipient_code: Mapped[str | None] = mapped_column(String(64), nullable=True)


class CustomerAccount(Base):
    __tablename__ = "customer_accounts"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    total_spent: Mapped[int] = mapped_column(Integer, default=0)
    total_bookings: Mapped[int] = mapped_column(Integer, default=0)
