from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from artisan_booking.core.security import Actor
from artisan_booking.db.session import Base
from artisan_booking.models import account, audit_log, booking, escrow, ledger_transaction, negotiation, outbox_event, payment  # noqa: F401
from artisan_booking.schemas.pricing import ServiceOffering, SimpleFixed
from artisan_booking.services import booking_service, payment_service

from fakes import FakeGateway

CUSTOMER_ID = "cust-1"
ARTISAN_ID = "art-1"


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def now():
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def customer():
    return Actor(user_id=CUSTOMER_ID, role="customer")


@pytest.fixture()
def artisan():
    return Actor(user_id=ARTISAN_ID, role="artisan")


@pytest.fixture()
def admin():
    return Actor(user_id="admin-1", role="admin")


@pytest.fixture()
def stranger():
    return Actor(user_id="someone-else", role="customer")


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def offering():
    return ServiceOffering(service_ref="svc-plumbing", pricing=SimpleFixed(base_price=5000))


@pytest.fixture()
def new_booking(db, offering, now):
    def _make(offer=None, at=None, selections=None):
        return booking_service.create_booking(
            db, CUSTOMER_ID, ARTISAN_ID, offer or offering, selections,
            description="Fix leaking kitchen tap", now=at or now,
        )
    return _make


@pytest.fixture()
def accepted_booking(db, new_booking, artisan, now):
    def _make():
        b = new_booking()
        return booking_service.accept(db, b.id, artisan, now=now + timedelta(seconds=30))
    return _make


@pytest.fixture()
def paid_booking(db, accepted_booking, customer, gateway, now):
    """Accepted and paid: returns (booking, payment)."""
    def _make():
        b = accepted_booking()
        payment, _ = payment_service.initialize_payment(db, gateway, b.id, customer, "c@example.com", now=now + timedelta(minutes=1))
        payment = payment_service.reconcile_charge(db, payment.reference, True, {"status": "success"}, now=now + timedelta(minutes=2))
        return booking_service.get_booking(db, b.id), payment
    return _make


@pytest.fixture()
def completed_booking(db, paid_booking, artisan, now):
    def _make():
        b, _ = paid_booking()
        booking_service.start_job(db, b.id, artisan, now=now + timedelta(hours=1))
        return booking_service.complete_job(
            db, b.id, artisan, "Replaced the cartridge and resealed the tap base",
            ["https://img.test/after.jpg"], now=now + timedelta(hours=3),
        )
    return _make
