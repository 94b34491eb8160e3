"""Booking state machine.

Every transition re-reads the booking FOR UPDATE inside ``ledger.atomic``, checks
status and party, writes, and commits together with escrow changes, counters,
ledger transactions, outbox rows and the audit entry. Deadlines are compared
against ``now`` on the locked row, so a late decision loses to the deadline.
"""
import logging
import random
import string
import uuid
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from artisan_booking.core.config import settings
from artisan_booking.core.clock import utcnow
from artisan_booking.core.errors import ValidationError, NotFound, Forbidden, InvalidState, Expired, ConsistencyError
from artisan_booking.core.security import Actor
from artisan_booking.models.booking import Booking
from artisan_booking.models.escrow import Escrow
from artisan_booking.schemas.pricing import ServiceOffering, Selections
from artisan_booking.services import ledger, account_service, escrow_service, negotiation_service
from artisan_booking.services.booking_rules import (
    CANCELLABLE, DISPUTABLE, require_status, require_artisan, require_customer, party_role, set_once,
    can_review as _can_review,
)
from artisan_booking.services.audit_service import log_audit
from artisan_booking.services.fees import price_terms
from artisan_booking.services.outbox_service import emit, booking_payload
from artisan_booking.services.pricing import compute_price

logger = logging.getLogger(__name__)

MIN_COMPLETION_NOTES = 20
EXPIRED_REASON = "expired"
AUTO_DECLINE_MESSAGE = "Auto-declined - no response within the response window"
NEGOTIATION_REJECTED_REASON = "Price negotiation rejected"
NEGOTIATION_EXPIRED_REASON = "Price negotiation expired"


def make_booking_number(now: datetime) -> str:
    ms = int(now.timestamp() * 1000)
    return f"BK-{ms}-" + "".join(random.choices(string.digits, k=4))


def _other_party(b: Booking, role: str) -> str:
    return b.customer_id if role == "artisan" else b.artisan_id


def _negotiating_role(b: Booking, actor: Actor) -> str:
    role = party_role(b, actor)
    if role not in ("customer", "artisan"):
        raise Forbidden("only the customer or the artisan can negotiate", booking_id=b.id)
    return role


def _deadline_passed(b: Booking, now: datetime) -> bool:
    return b.expires_at is not None and now > b.expires_at


def _apply_price(b: Booking, amount: int) -> None:
    terms = price_terms(amount)
    b.agreed_price = terms["agreed_price"]
    b.platform_fee = terms["platform_fee"]
    b.total_amount = terms["total_amount"]


def _decline(db: Session, b: Booking, now: datetime, decline_reason: str, cancelled_by: str,
             actor_id: str, cancellation_reason: str | None = None) -> None:
    b.status = "declined"
    set_once(b, "declined_at", now)
    b.decline_reason = decline_reason
    b.cancellation_reason = cancellation_reason
    b.cancelled_by = cancelled_by
    b.expires_at = None
    account_service.record_decline(db, b.artisan_id)
    emit(db, b.customer_id, "booking_declined", booking_payload(b, reason=decline_reason))
    if cancelled_by == "system":
        emit(db, b.artisan_id, "booking_expired", booking_payload(b, reason=decline_reason))
    log_audit(db, actor_id, "booking.decline", "booking", b.id, {"reason": decline_reason, "by": cancelled_by})
    logger.info("booking %s declined by %s: %s", b.id, cancelled_by, decline_reason)


def _expire_pending(db: Session, b: Booking, now: datetime) -> None:
    _decline(db, b, now, EXPIRED_REASON, "system", "system", cancellation_reason=AUTO_DECLINE_MESSAGE)


def _sync_released(b: Booking, escrow, now: datetime) -> None:
    if b.final_price is None:
        # auto-release of a job that never reached completion
        b.final_price = b.agreed_price
    b.status = "payment_released"
    b.payment_status = "released"
    if b.payment_released_at is None:
        b.payment_released_at = escrow.released_at or now


def get_booking(db: Session, booking_id: str, actor: Actor | None = None) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFound("booking not found", booking_id=booking_id)
    if actor is not None:
        party_role(b, actor)
    return b


def can_review(booking: Booking) -> bool:
    return _can_review(booking)


def create_booking(
    db: Session,
    customer_id: str,
    artisan_id: str,
    offering: ServiceOffering,
    selections: Selections | None = None,
    description: str = "",
    scheduled_for: datetime | None = None,
    now: datetime | None = None,
) -> Booking:
    if customer_id == artisan_id:
        raise ValidationError("customer and artisan must be different users")
    now = now or utcnow()
    sel = selections or Selections()
    quote = compute_price(offering, sel)

    with ledger.atomic(db):
        # booking_number must be unique
        for _ in range(10):
            number = make_booking_number(now)
            if not db.query(Booking).filter(Booking.booking_number == number).first():
                break
        else:
            raise ConsistencyError("could not allocate booking number")

        b = Booking(
            id=str(uuid.uuid4()),
            booking_number=number,
            customer_id=customer_id,
            artisan_id=artisan_id,
            service_ref=offering.service_ref,
            description=description or "",
            urgency=sel.urgency,
            scheduled_for=scheduled_for,
            pricing_model=quote.kind,
            price_breakdown=quote.model_dump(),
            estimated_price=quote.final_price,
            platform_fee=0,
            total_amount=0,
            status="pending",
            payment_status="unpaid",
            expires_at=now + timedelta(seconds=settings.BOOKING_ACCEPT_TIMEOUT_SECONDS),
            created_at=now,
        )
        db.add(b)
        account_service.record_booking_request(db, artisan_id)
        emit(db, artisan_id, "booking_created", booking_payload(b, estimated_price=b.estimated_price, expires_at=b.expires_at.isoformat()))
        log_audit(db, customer_id, "booking.create", "booking", b.id, {"booking_number": number, "estimated_price": b.estimated_price})
    logger.info("booking %s created for artisan %s estimated=%s", b.id, artisan_id, b.estimated_price)
    return b


def accept(db: Session, booking_id: str, actor: Actor, now: datetime | None = None) -> Booking:
    expired = False
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        # deadlines are judged once the row lock is held
        now = now or utcnow()
        require_artisan(b, actor)
        require_status(b, "pending")
        if _deadline_passed(b, now):
            _expire_pending(db, b, now)
            expired = True
        else:
            if b.estimated_price is None:
                raise ValidationError("this service has no fixed price; propose a price instead", booking_id=b.id)
            _apply_price(b, b.estimated_price)
            b.status = "accepted"
            set_once(b, "accepted_at", now)
            b.expires_at = None
            account_service.record_acceptance(db, b.artisan_id, b.created_at, now)
            emit(db, b.customer_id, "booking_accepted", booking_payload(b, agreed_price=b.agreed_price, total_amount=b.total_amount))
            log_audit(db, actor.user_id, "booking.accept", "booking", b.id, {"agreed_price": b.agreed_price})
    if expired:
        raise Expired("the response window has passed; booking declined", booking_id=booking_id)
    logger.info("booking %s accepted agreed=%s", b.id, b.agreed_price)
    return b


def decline(db: Session, booking_id: str, actor: Actor, reason: str, now: datetime | None = None) -> Booking:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("decline reason is required")
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        require_artisan(b, actor)
        require_status(b, "pending")
        _decline(db, b, now, reason, "artisan", actor.user_id)
    return b


def propose_price(db: Session, booking_id: str, actor: Actor, amount: int, message: str = "", now: datetime | None = None) -> Booking:
    expired = False
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        # deadlines are judged once the row lock is held
        now = now or utcnow()
        require_artisan(b, actor)
        require_status(b, "pending")
        if _deadline_passed(b, now):
            _expire_pending(db, b, now)
            expired = True
        else:
            negotiation_service.start_negotiation(db, b, "artisan", amount, message, now)
            b.status = "negotiating"
            b.expires_at = None
            emit(db, b.customer_id, "price_proposed", booking_payload(b, amount=int(amount), message=message))
            log_audit(db, actor.user_id, "booking.propose_price", "booking", b.id, {"amount": amount})
    if expired:
        raise Expired("the response window has passed; booking declined", booking_id=booking_id)
    return b


def counter_offer(db: Session, booking_id: str, actor: Actor, amount: int, message: str = "", now: datetime | None = None) -> Booking:
    expired = False
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        # deadlines are judged once the row lock is held
        now = now or utcnow()
        role = _negotiating_role(b, actor)
        require_status(b, "negotiating")
        neg = b.negotiation
        if neg is None:
            raise ConsistencyError("negotiating booking has no negotiation", booking_id=b.id)
        try:
            rnd = negotiation_service.add_round(db, neg, role, amount, message, now)
        except Expired:
            _decline(db, b, now, NEGOTIATION_EXPIRED_REASON, "system", "system")
            expired = True
        else:
            emit(db, _other_party(b, role), "counter_offer", booking_payload(b, amount=rnd.amount, round=rnd.round_number, message=message))
            log_audit(db, actor.user_id, "booking.counter_offer", "booking", b.id, {"amount": rnd.amount, "round": rnd.round_number})
    if expired:
        raise Expired("the negotiation window has passed; booking declined", booking_id=booking_id)
    return b


def accept_negotiated_price(db: Session, booking_id: str, actor: Actor, now: datetime | None = None) -> Booking:
    expired = False
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        # deadlines are judged once the row lock is held
        now = now or utcnow()
        role = _negotiating_role(b, actor)
        require_status(b, "negotiating")
        neg = b.negotiation
        if neg is None or neg.status != "active":
            raise InvalidState("no active negotiation", booking_id=b.id)
        if negotiation_service.is_expired(neg, now):
            negotiation_service.expire_negotiation(db, neg)
            _decline(db, b, now, NEGOTIATION_EXPIRED_REASON, "system", "system")
            expired = True
        else:
            last = neg.last_round
            if last.proposed_by == role:
                raise InvalidState("you cannot accept your own offer", booking_id=b.id)
            negotiation_service.accept_negotiation(db, neg, last.amount)
            _apply_price(b, last.amount)
            b.status = "accepted"
            set_once(b, "accepted_at", now)
            emit(db, _other_party(b, role), "negotiation_accepted", booking_payload(b, agreed_price=b.agreed_price, total_amount=b.total_amount))
            log_audit(db, actor.user_id, "booking.accept_negotiated_price", "booking", b.id, {"agreed_price": b.agreed_price, "rounds": len(neg.rounds)})
    if expired:
        raise Expired("the negotiation window has passed; booking declined", booking_id=booking_id)
    logger.info("booking %s accepted at negotiated price %s", b.id, b.agreed_price)
    return b


def reject_negotiation(db: Session, booking_id: str, actor: Actor, now: datetime | None = None) -> Booking:
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        role = _negotiating_role(b, actor)
        require_status(b, "negotiating")
        neg = b.negotiation
        if neg is None:
            raise ConsistencyError("negotiating booking has no negotiation", booking_id=b.id)
        negotiation_service.reject_negotiation(db, neg)
        _decline(db, b, now, NEGOTIATION_REJECTED_REASON, role, actor.user_id)
        emit(db, _other_party(b, role), "negotiation_rejected", booking_payload(b))
    return b


def start_job(db: Session, booking_id: str, actor: Actor, now: datetime | None = None) -> Booking:
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        require_artisan(b, actor)
        require_status(b, "confirmed")
        b.status = "in_progress"
        set_once(b, "started_at", now)
        emit(db, b.customer_id, "job_started", booking_payload(b))
        log_audit(db, actor.user_id, "booking.start", "booking", b.id)
    return b


def complete_job(
    db: Session,
    booking_id: str,
    actor: Actor,
    notes: str,
    photos: list[str],
    materials: list | None = None,
    work_duration: int | None = None,
    now: datetime | None = None,
) -> Booking:
    notes = (notes or "").strip()
    photos = [p for p in (photos or []) if p]
    if not photos:
        raise ValidationError("at least one completion photo is required")
    if len(notes) < MIN_COMPLETION_NOTES:
        raise ValidationError(f"completion notes must be at least {MIN_COMPLETION_NOTES} characters")
    if work_duration is not None and work_duration < 0:
        raise ValidationError("work duration cannot be negative")
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        require_artisan(b, actor)
        require_status(b, "in_progress")
        if work_duration is None:
            work_duration = round((now - b.started_at).total_seconds() / 3600)
        b.status = "completed"
        set_once(b, "completed_at", now)
        b.completion_notes = notes
        b.completion_photos = photos
        b.materials_used = list(materials or [])
        b.work_duration = work_duration
        b.final_price = b.agreed_price
        account_service.record_job_completed(db, b.artisan_id)
        emit(db, b.customer_id, "job_completed", booking_payload(b, final_price=b.final_price))
        log_audit(db, actor.user_id, "booking.complete", "booking", b.id, {"work_duration": work_duration, "photos": len(photos)})
    return b


def cancel(db: Session, booking_id: str, actor: Actor, reason: str, now: datetime | None = None) -> Booking:
    """Cancel and, when money is held, refund it in the same transaction."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("cancellation reason is required")
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        role = party_role(b, actor)
        if b.status not in CANCELLABLE:
            raise InvalidState(f"booking cannot be cancelled when {b.status}", booking_id=b.id)
        if b.status == "negotiating" and b.negotiation is not None and b.negotiation.status == "active":
            negotiation_service.reject_negotiation(db, b.negotiation)

        refunded = None
        if b.payment_status == "paid":
            escrow = ledger.lock_escrow(db, b.escrow_id)
            refunded = escrow_service.refund_escrow(db, escrow, reason, now)
            b.payment_status = "refunded"

        b.status = "cancelled"
        set_once(b, "cancelled_at", now)
        b.cancellation_reason = reason
        b.cancelled_by = role
        b.expires_at = None

        for user_id in {b.customer_id, b.artisan_id} - {actor.user_id}:
            emit(db, user_id, "booking_cancelled", booking_payload(b, reason=reason, cancelled_by=role))
        if refunded is not None:
            emit(db, b.customer_id, "refund_issued", booking_payload(b, amount=refunded.amount))
        log_audit(db, actor.user_id, "booking.cancel", "booking", b.id, {"reason": reason, "refunded": refunded is not None})
    logger.info("booking %s cancelled by %s", b.id, role)
    return b


def release_payment(db: Session, booking_id: str, actor: Actor, now: datetime | None = None) -> Booking:
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        if actor.role == "admin" and actor.user_id != b.customer_id:
            release_type = "admin"
        else:
            require_customer(b, actor)
            release_type = "manual"
        if b.status == "payment_released":
            return b
        require_status(b, "completed")
        if not b.escrow_id:
            raise ConsistencyError("paid booking has no escrow", booking_id=b.id)
        escrow = ledger.lock_escrow(db, b.escrow_id)
        escrow, changed = escrow_service.release_escrow(db, escrow, release_type, actor.user_id, now)
        if not changed:
            logger.warning("escrow %s already released, repairing booking %s", escrow.id, b.id)
        _sync_released(b, escrow, now)
        if changed:
            emit(db, b.artisan_id, "payment_released", booking_payload(b, amount=escrow.artisan_amount))
        log_audit(db, actor.user_id, "booking.release_payment", "booking", b.id, {"escrow_id": escrow.id, "changed": changed})
    return b


def open_dispute(db: Session, booking_id: str, actor: Actor, reason: str, now: datetime | None = None) -> Booking:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("dispute reason is required")
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        role = party_role(b, actor)
        if b.status not in DISPUTABLE:
            raise InvalidState(f"booking cannot be disputed when {b.status}", booking_id=b.id)
        escrow = ledger.lock_escrow(db, b.escrow_id)
        escrow_service.park_escrow(db, escrow)
        b.status = "disputed"
        for user_id in {b.customer_id, b.artisan_id} - {actor.user_id}:
            emit(db, user_id, "booking_disputed", booking_payload(b, reason=reason, opened_by=role))
        log_audit(db, actor.user_id, "booking.dispute", "booking", b.id, {"reason": reason})
    logger.warning("booking %s disputed by %s", b.id, role)
    return b


# ---- sweeper transitions (each returns False when there is nothing to do) ----

def expire_pending_booking(db: Session, booking_id: str, now: datetime | None = None) -> bool:
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        if b.status != "pending" or not _deadline_passed(b, now):
            return False
        _expire_pending(db, b, now)
    return True


def expire_negotiation_booking(db: Session, booking_id: str, now: datetime | None = None) -> bool:
    now = now or utcnow()
    with ledger.atomic(db):
        b = ledger.lock_booking(db, booking_id)
        neg = b.negotiation
        if b.status != "negotiating" or neg is None or neg.status != "active" or not negotiation_service.is_expired(neg, now):
            return False
        negotiation_service.expire_negotiation(db, neg)
        _decline(db, b, now, NEGOTIATION_EXPIRED_REASON, "system", "system")
    return True


def auto_release_booking(db: Session, escrow_id: str, now: datetime | None = None) -> bool:
    now = now or utcnow()
    with ledger.atomic(db):
        escrow = db.get(Escrow, escrow_id)
        if escrow is None:
            raise NotFound("escrow not found", escrow_id=escrow_id)
        b = ledger.lock_booking(db, escrow.booking_id)
        escrow = ledger.lock_escrow(db, escrow_id)
        if escrow.status != "held" or escrow.auto_release_at is None or escrow.auto_release_at > now:
            return False
        if b.status not in ("confirmed", "in_progress", "completed"):
            raise ConsistencyError(f"held escrow on a {b.status} booking", booking_id=b.id, escrow_id=escrow.id)
        escrow, _ = escrow_service.release_escrow(db, escrow, "auto", None, now)
        _sync_released(b, escrow, now)
        emit(db, b.artisan_id, "payment_released", booking_payload(b, amount=escrow.artisan_amount, release_type="auto"))
        emit(db, b.customer_id, "payment_auto_released", booking_payload(b))
        log_audit(db, "system", "escrow.auto_release", "escrow", escrow.id, {"booking_id": b.id})
    return True
