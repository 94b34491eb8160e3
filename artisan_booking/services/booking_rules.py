"""Status rules shared by every transition.

``check_invariants`` is run on every booking about to be committed; a failure
means a code path wrote an impossible combination and is treated as fatal.
"""
from artisan_booking.core.errors import ConsistencyError, Forbidden, InvalidState
from artisan_booking.core.security import Actor

ALLOWED_PAYMENT_STATUS = {
    "pending": {"unpaid"},
    "negotiating": {"unpaid"},
    "accepted": {"unpaid"},
    "declined": {"unpaid"},
    "confirmed": {"paid"},
    "in_progress": {"paid"},
    "completed": {"paid"},
    "disputed": {"paid"},
    "payment_released": {"released"},
    "cancelled": {"unpaid", "refunded"},
}

AGREED_PRICE_REQUIRED = {"accepted", "confirmed", "in_progress", "completed", "payment_released"}
AGREED_PRICE_FORBIDDEN = {"pending", "negotiating", "declined"}
FINAL_PRICE_REQUIRED = {"completed", "payment_released"}
FINAL_PRICE_FORBIDDEN = {"pending", "negotiating", "declined", "accepted", "confirmed", "in_progress"}
ESCROW_PAYMENT_STATUSES = {"paid", "released", "refunded"}

CANCELLABLE = {"pending", "negotiating", "accepted", "confirmed", "in_progress"}
DISPUTABLE = {"confirmed", "in_progress", "completed"}
REVIEWABLE = {"completed", "payment_released"}


def check_invariants(booking) -> None:
    problems = []
    allowed = ALLOWED_PAYMENT_STATUS.get(booking.status)
    if allowed is None:
        problems.append(f"unknown status {booking.status}")
    elif booking.payment_status not in allowed:
        problems.append(f"payment_status {booking.payment_status} not allowed with {booking.status}")

    if booking.status in AGREED_PRICE_REQUIRED and booking.agreed_price is None:
        problems.append("agreed_price missing")
    if booking.status in AGREED_PRICE_FORBIDDEN and booking.agreed_price is not None:
        problems.append("agreed_price set before acceptance")
    if booking.status in FINAL_PRICE_REQUIRED and booking.final_price is None:
        problems.append("final_price missing")
    if booking.status in FINAL_PRICE_FORBIDDEN and booking.final_price is not None:
        problems.append("final_price set before completion")

    has_escrow = booking.escrow_id is not None
    if has_escrow != (booking.payment_status in ESCROW_PAYMENT_STATUSES):
        problems.append("escrow_id does not match payment_status")

    if problems:
        raise ConsistencyError("booking invariant violated", booking_id=booking.id, problems=problems)


def check_escrow_invariants(escrow) -> None:
    released = escrow.released_at is not None
    refunded = escrow.refunded_at is not None
    ok = (
        (escrow.status == "released" and released and not refunded)
        or (escrow.status == "refunded" and refunded and not released)
        or (escrow.status in ("held", "disputed") and not released and not refunded)
    )
    if not ok:
        raise ConsistencyError("escrow invariant violated", escrow_id=escrow.id, status=escrow.status)


def require_status(booking, *statuses: str) -> None:
    if booking.status not in statuses:
        raise InvalidState(
            f"booking is {booking.status}, expected {' or '.join(statuses)}",
            booking_id=booking.id, status=booking.status,
        )


def party_role(booking, actor: Actor) -> str:
    """'customer' or 'artisan' for a party of record, 'admin' for admins."""
    if actor.user_id == booking.customer_id and actor.role in ("customer", "admin"):
        return "customer"
    if actor.user_id == booking.artisan_id and actor.role in ("artisan", "admin"):
        return "artisan"
    if actor.role == "admin":
        return "admin"
    raise Forbidden("not a party to this booking", booking_id=booking.id)


def require_customer(booking, actor: Actor) -> None:
    if actor.user_id != booking.customer_id:
        raise Forbidden("only the customer can do this", booking_id=booking.id)


def require_artisan(booking, actor: Actor) -> None:
    if actor.user_id != booking.artisan_id:
        raise Forbidden("only the artisan can do this", booking_id=booking.id)


def set_once(obj, field: str, value) -> None:
    if getattr(obj, field) is not None:
        raise ConsistencyError(f"{field} already set", entity_id=obj.id)
    setattr(obj, field, value)


def can_review(booking) -> bool:
    return booking.status in REVIEWABLE
