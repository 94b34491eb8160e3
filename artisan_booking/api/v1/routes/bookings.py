from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from artisan_booking.api.deps import get_db, get_actor, get_cache, require_roles
from artisan_booking.core.security import Actor
from artisan_booking.schemas.booking import BookingCreate, BookingOut, ReasonIn, PriceOfferIn, CompleteJobIn
from artisan_booking.services import booking_service
from artisan_booking.services.booking_views import get_booking_summary, invalidate_booking
from artisan_booking.services.cache import Cache

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _transition(cache: Cache, booking_id: str, fn, *args, **kwargs) -> BookingOut:
    # Expired is raised after a committed decline
    try:
        b = fn(*args, **kwargs)
    finally:
        invalidate_booking(cache, booking_id)
    return BookingOut.model_validate(b)


@router.post("", response_model=BookingOut)
def create_booking(body: BookingCreate, actor: Actor = Depends(require_roles("customer")), db: Session = Depends(get_db)):
    b = booking_service.create_booking(
        db, actor.user_id, body.artisan_id, body.offering, body.selections,
        description=body.description, scheduled_for=body.scheduled_for,
    )
    return BookingOut.model_validate(b)


@router.get("/{booking_id}")
def get_booking(booking_id: str, actor: Actor = Depends(get_actor),
                db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    booking_service.get_booking(db, booking_id, actor)
    return get_booking_summary(db, cache, booking_id)


@router.post("/{booking_id}/accept", response_model=BookingOut)
def accept(booking_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.accept, db, booking_id, actor)


@router.post("/{booking_id}/decline", response_model=BookingOut)
def decline(booking_id: str, body: ReasonIn, actor: Actor = Depends(get_actor),
            db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.decline, db, booking_id, actor, body.reason)


@router.post("/{booking_id}/propose-price", response_model=BookingOut)
def propose_price(booking_id: str, body: PriceOfferIn, actor: Actor = Depends(get_actor),
                  db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.propose_price, db, booking_id, actor, body.amount, body.message)


@router.post("/{booking_id}/counter-offer", response_model=BookingOut)
def counter_offer(booking_id: str, body: PriceOfferIn, actor: Actor = Depends(get_actor),
                  db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.counter_offer, db, booking_id, actor, body.amount, body.message)


@router.post("/{booking_id}/negotiation/accept", response_model=BookingOut)
def accept_negotiated_price(booking_id: str, actor: Actor = Depends(get_actor),
                            db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.accept_negotiated_price, db, booking_id, actor)


@router.post("/{booking_id}/negotiation/reject", response_model=BookingOut)
def reject_negotiation(booking_id: str, actor: Actor = Depends(get_actor),
                       db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.reject_negotiation, db, booking_id, actor)


@router.post("/{booking_id}/start", response_model=BookingOut)
def start_job(booking_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.start_job, db, booking_id, actor)


@router.post("/{booking_id}/complete", response_model=BookingOut)
def complete_job(booking_id: str, body: CompleteJobIn, actor: Actor = Depends(get_actor),
                 db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(
        cache, booking_id, booking_service.complete_job, db, booking_id, actor, body.notes, body.photos,
        materials=body.materials, work_duration=body.work_duration,
    )


@router.post("/{booking_id}/cancel", response_model=BookingOut)
def cancel(booking_id: str, body: ReasonIn, actor: Actor = Depends(get_actor),
           db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.cancel, db, booking_id, actor, body.reason)


@router.post("/{booking_id}/release-payment", response_model=BookingOut)
def release_payment(booking_id: str, actor: Actor = Depends(get_actor),
                    db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.release_payment, db, booking_id, actor)


@router.post("/{booking_id}/dispute", response_model=BookingOut)
def open_dispute(booking_id: str, body: ReasonIn, actor: Actor = Depends(get_actor),
                 db: Session = Depends(get_db), cache: Cache = Depends(get_cache)):
    return _transition(cache, booking_id, booking_service.open_dispute, db, booking_id, actor, body.reason)
