from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from artisan_booking.core.errors import Conflict, InvalidState
from artisan_booking.core.security import Actor
from artisan_booking.db.session import Base, make_engine
from artisan_booking.models.account import ArtisanAccount
from artisan_booking.models.escrow import Escrow
from artisan_booking.services import account_service, booking_service, ledger, payment_service, sweeper


@pytest.fixture()
def file_sessions(tmp_path):
    """Separate connections to one SQLite file, so each session sees only committed data."""
    eng = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(eng)
    yield sessionmaker(bind=eng, autocommit=False, autoflush=False)
    eng.dispose()


def _completed(session_factory, customer_id, offering, artisan, gateway, now) -> str:
    """Create, pay for and complete a booking with ``art-1``; returns the booking id."""
    payer = Actor(user_id=customer_id, role="customer")
    db = session_factory()
    try:
        b = booking_service.create_booking(db, customer_id, "art-1", offering, now=now)
        booking_service.accept(db, b.id, artisan, now=now)
        payment, _ = payment_service.initialize_payment(db, gateway, b.id, payer, "c@example.com", now=now)
        payment_service.reconcile_charge(db, payment.reference, True, {}, now=now)
        booking_service.start_job(db, b.id, artisan, now=now)
        booking_service.complete_job(db, b.id, artisan, "Replaced the cartridge and resealed", ["p.jpg"], now=now)
        return b.id
    finally:
        db.close()


def test_sweeper_wins_against_late_accept(file_sessions, offering, artisan, now, monkeypatch):
    setup = file_sessions()
    b = booking_service.create_booking(setup, "cust-1", "art-1", offering, now=now)
    booking_id = b.id
    setup.close()

    real_record = account_service.record_acceptance

    def expire_then_record(db, *args):
        # expiry commits from another connection after the accept read the pending row
        assert sweeper.expire_pending_bookings(file_sessions, now=now + timedelta(minutes=3)).succeeded == [booking_id]
        real_record(db, *args)

    monkeypatch.setattr(account_service, "record_acceptance", expire_then_record)
    a = file_sessions()
    try:
        with pytest.raises(Conflict):
            booking_service.accept(a, booking_id, artisan, now=now + timedelta(seconds=30))
    finally:
        a.close()

    check = file_sessions()
    try:
        final = booking_service.get_booking(check, booking_id)
        assert final.status == "declined"
        assert final.decline_reason == "expired"
        assert final.agreed_price is None
        assert final.version == 2
        assert check.get(ArtisanAccount, "art-1").total_accepted_bookings == 0
    finally:
        check.close()


def test_second_accept_sees_the_first(file_sessions, offering, artisan, now):
    setup = file_sessions()
    b = booking_service.create_booking(setup, "cust-1", "art-1", offering, now=now)
    booking_id = b.id
    setup.close()

    first, second = file_sessions(), file_sessions()
    try:
        booking_service.accept(first, booking_id, artisan, now=now + timedelta(seconds=10))
        with pytest.raises(InvalidState):
            booking_service.accept(second, booking_id, artisan, now=now + timedelta(seconds=11))
        assert second.get(ArtisanAccount, "art-1").total_accepted_bookings == 1
    finally:
        first.close()
        second.close()


def test_concurrent_releases_for_one_artisan_both_credit(file_sessions, offering, artisan, gateway, now):
    first_id = _completed(file_sessions, "cust-1", offering, artisan, gateway, now)
    second_id = _completed(file_sessions, "cust-2", offering, artisan, gateway, now)

    a, b = file_sessions(), file_sessions()
    try:
        # A holds the earnings counter as it was before B's release
        assert a.get(ArtisanAccount, "art-1").total_earnings == 0
        booking_service.release_payment(b, second_id, Actor(user_id="cust-2", role="customer"), now=now + timedelta(hours=1))
        booking_service.release_payment(a, first_id, Actor(user_id="cust-1", role="customer"), now=now + timedelta(hours=1))
    finally:
        a.close()
        b.close()

    check = file_sessions()
    try:
        acc = check.get(ArtisanAccount, "art-1")
        assert acc.total_earnings == 10000
        assert acc.total_jobs_completed == 2
    finally:
        check.close()


def test_manual_and_auto_release_race(file_sessions, offering, artisan, customer, gateway, now):
    booking_id = _completed(file_sessions, "cust-1", offering, artisan, gateway, now)
    db = file_sessions()
    try:
        escrow = db.get(Escrow, booking_service.get_booking(db, booking_id).escrow_id)
        escrow_id, due = escrow.id, escrow.auto_release_at
    finally:
        db.close()

    manual = file_sessions()
    try:
        with pytest.raises(Conflict):
            with ledger.atomic(manual):
                locked = ledger.lock_booking(manual, booking_id)
                assert sweeper.auto_release_escrows(file_sessions, now=due).succeeded == [escrow_id]
                locked.description = "customer release racing the sweeper"
    finally:
        manual.close()

    check = file_sessions()
    try:
        assert check.get(ArtisanAccount, "art-1").total_earnings == 5000
        assert check.get(Escrow, escrow_id).release_type == "auto"
    finally:
        check.close()
