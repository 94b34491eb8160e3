import uuid
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.core.clock import utcnow
from artisan_booking.core.errors import ValidationError, InvalidState, Expired, NegotiationExhausted
from artisan_booking.models.negotiation import Negotiation, NegotiationRound

MAX_MESSAGE_LEN = 500


def _validate_offer(amount: int, message: str) -> None:
    if amount is None or int(amount) <= 0:
        raise ValidationError("amount must be > 0", amount=amount)
    if message and len(message) > MAX_MESSAGE_LEN:
        raise ValidationError(f"message cannot exceed {MAX_MESSAGE_LEN} characters")


def _require_active(negotiation: Negotiation) -> None:
    if negotiation.status != "active":
        raise InvalidState(f"negotiation is {negotiation.status}", negotiation_id=negotiation.id)


def is_expired(negotiation: Negotiation, now: datetime) -> bool:
    return now > negotiation.expires_at


def start_negotiation(db: Session, booking, proposer: str, amount: int, message: str = "", now: datetime | None = None) -> Negotiation:
    now = now or utcnow()
    _validate_offer(amount, message)
    neg = Negotiation(
        id=str(uuid.uuid4()),
        booking=booking,
        customer_id=booking.customer_id,
        artisan_id=booking.artisan_id,
        status="active",
        initial_price=int(amount),
        max_rounds=settings.NEGOTIATION_MAX_ROUNDS,
        expires_at=now + timedelta(hours=settings.NEGOTIATION_TTL_HOURS),
        created_at=now,
    )
    neg.rounds.append(NegotiationRound(
        id=str(uuid.uuid4()),
        round_number=1,
        proposed_by=proposer,
        amount=int(amount),
        message=message or "",
        response="pending",
        created_at=now,
    ))
    db.add(neg)
    return neg


def add_round(db: Session, negotiation: Negotiation, proposer: str, amount: int, message: str = "", now: datetime | None = None) -> NegotiationRound:
    """Counter-offer. On expiry the negotiation is marked expired and Expired is raised;
    the caller owns declining the booking and committing."""
    now = now or utcnow()
    _require_active(negotiation)
    if is_expired(negotiation, now):
        expire_negotiation(db, negotiation)
        raise Expired("negotiation has expired", negotiation_id=negotiation.id)
    if len(negotiation.rounds) >= negotiation.max_rounds:
        raise NegotiationExhausted(
            f"maximum of {negotiation.max_rounds} rounds reached", negotiation_id=negotiation.id,
        )
    _validate_offer(amount, message)

    last = negotiation.last_round
    if last is not None:
        last.response = "countered"
    rnd = NegotiationRound(
        id=str(uuid.uuid4()),
        round_number=len(negotiation.rounds) + 1,
        proposed_by=proposer,
        amount=int(amount),
        message=message or "",
        response="pending",
        created_at=now,
    )
    negotiation.rounds.append(rnd)
    return rnd


def accept_negotiation(db: Session, negotiation: Negotiation, agreed_amount: int) -> Negotiation:
    _require_active(negotiation)
    negotiation.last_round.response = "accepted"
    negotiation.agreed_price = int(agreed_amount)
    negotiation.status = "agreed"
    return negotiation


def reject_negotiation(db: Session, negotiation: Negotiation) -> Negotiation:
    _require_active(negotiation)
    if negotiation.last_round is not None:
        negotiation.last_round.response = "rejected"
    negotiation.status = "rejected"
    return negotiation


def expire_negotiation(db: Session, negotiation: Negotiation) -> Negotiation:
    _require_active(negotiation)
    negotiation.status = "expired"
    return negotiation
