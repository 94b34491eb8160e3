from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.core.errors import NotFound
from artisan_booking.models.booking import Booking
from artisan_booking.services.booking_rules import can_review
from artisan_booking.services.cache import Cache


def _key(booking_id: str) -> str:
    return f"booking:{booking_id}:summary"


def summarize(b: Booking) -> dict:
    neg = b.negotiation
    return {
        "id": b.id,
        "booking_number": b.booking_number,
        "customer_id": b.customer_id,
        "artisan_id": b.artisan_id,
        "status": b.status,
        "payment_status": b.payment_status,
        "pricing_model": b.pricing_model,
        "estimated_price": b.estimated_price,
        "agreed_price": b.agreed_price,
        "final_price": b.final_price,
        "platform_fee": b.platform_fee,
        "total_amount": b.total_amount,
        "expires_at": b.expires_at.isoformat() if b.expires_at else None,
        "escrow_id": b.escrow_id,
        "can_review": can_review(b),
        "negotiation": None if neg is None else {
            "status": neg.status,
            "agreed_price": neg.agreed_price,
            "expires_at": neg.expires_at.isoformat(),
            "rounds": [
                {"round": r.round_number, "by": r.proposed_by, "amount": r.amount, "response": r.response, "message": r.message}
                for r in neg.rounds
            ],
        },
    }


def get_booking_summary(db: Session, cache: Cache, booking_id: str) -> dict:
    cached = cache.get(_key(booking_id))
    if cached is not None:
        return cached
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFound("booking not found", booking_id=booking_id)
    data = summarize(b)
    cache.set(_key(booking_id), data, settings.BOOKING_CACHE_TTL_SECONDS)
    return data


def invalidate_booking(cache: Cache, booking_id: str) -> None:
    cache.delete(_key(booking_id))
