import logging
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from artisan_booking.core.errors import ConsistencyError, Conflict, NotFound
from artisan_booking.models.booking import Booking
from artisan_booking.models.escrow import Escrow
from artisan_booking.services.booking_rules import check_invariants, check_escrow_invariants

logger = logging.getLogger(__name__)


def lock_booking(db: Session, booking_id: str) -> Booking:
    """Re-read the booking row FOR UPDATE, discarding any stale identity-map state."""
    b = db.execute(
        select(Booking).where(Booking.id == booking_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not b:
        raise NotFound("booking not found", booking_id=booking_id)
    return b


def lock_escrow(db: Session, escrow_id: str) -> Escrow:
    e = db.execute(
        select(Escrow).where(Escrow.id == escrow_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not e:
        raise NotFound("escrow not found", escrow_id=escrow_id)
    return e


def verify_pending(db: Session) -> None:
    """Run the booking/escrow invariant checks on everything about to be written."""
    # identity_map too: objects flushed earlier in the transaction are no longer dirty
    for obj in list(db.new) + list(db.identity_map.values()):
        if isinstance(obj, Booking):
            check_invariants(obj)
        elif isinstance(obj, Escrow):
            check_escrow_invariants(obj)


def commit(db: Session) -> None:
    """Commit the unit of work: invariants first, then the versioned write."""
    verify_pending(db)
    db.commit()


@contextmanager
def atomic(db: Session):
    """One transition, one transaction.

    A concurrent writer that committed first makes the versioned UPDATE (at
    flush or at commit) match no rows, or trips a unique constraint; either
    way the work is rolled back and Conflict is raised.
    """
    try:
        yield
        commit(db)
    except (StaleDataError, IntegrityError) as e:
        db.rollback()
        logger.info("concurrent write lost, transaction rolled back: %s", type(e).__name__)
        raise Conflict("record was modified concurrently, retry")
    except ConsistencyError as e:
        db.rollback()
        logger.critical("refusing to commit inconsistent state: %s %s", e.message, e.details)
        raise
    except Exception:
        db.rollback()
        raise
