import pytest

from artisan_booking.core.errors import InvalidEscrowState
from artisan_booking.models.account import ArtisanAccount, CustomerAccount
from artisan_booking.models.escrow import Escrow
from artisan_booking.models.ledger_transaction import LedgerTransaction
from artisan_booking.models.payment import Payment
from artisan_booking.services import escrow_service


def test_create_escrow_returns_existing(db, paid_booking, now):
    b, payment = paid_booking()
    spend = db.get(CustomerAccount, "cust-1")
    assert (spend.total_spent, spend.total_bookings) == (5250, 1)

    escrow, created = escrow_service.create_escrow(db, b, db.get(Payment, payment.id), now)
    db.commit()
    assert created is False
    assert escrow.id == b.escrow_id
    assert db.query(Escrow).count() == 1
    spend = db.get(CustomerAccount, "cust-1")
    assert (spend.total_spent, spend.total_bookings) == (5250, 1)
    assert db.query(LedgerTransaction).filter(LedgerTransaction.type == "payment").count() == 1


def test_release_twice_credits_once(db, paid_booking, now):
    b, _ = paid_booking()
    escrow = db.get(Escrow, b.escrow_id)
    _, changed = escrow_service.release_escrow(db, escrow, "manual", "cust-1", now)
    assert changed is True
    _, changed = escrow_service.release_escrow(db, escrow, "auto", None, now)
    assert changed is False
    assert escrow.release_type == "manual"
    assert db.get(ArtisanAccount, "art-1").total_earnings == 5000
    db.rollback()


def test_refund_only_from_held(db, paid_booking, now):
    b, _ = paid_booking()
    escrow = db.get(Escrow, b.escrow_id)
    escrow_service.refund_escrow(db, escrow, "Customer request", now)
    assert escrow.status == "refunded"
    assert escrow.refunded_at == now
    with pytest.raises(InvalidEscrowState):
        escrow_service.refund_escrow(db, escrow, "again", now)
    with pytest.raises(InvalidEscrowState):
        escrow_service.release_escrow(db, escrow, "manual", "cust-1", now)
    db.rollback()


def test_unknown_release_type(db, paid_booking, now):
    b, _ = paid_booking()
    with pytest.raises(ValueError):
        escrow_service.release_escrow(db, db.get(Escrow, b.escrow_id), "whenever", None, now)
