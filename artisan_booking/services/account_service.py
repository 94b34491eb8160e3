from datetime import datetime
from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from artisan_booking.models.account import ArtisanAccount, CustomerAccount


def get_or_create_artisan(db: Session, user_id: str) -> ArtisanAccount:
    acc = db.get(ArtisanAccount, user_id)
    if not acc:
        acc = ArtisanAccount(
            user_id=user_id, total_earnings=0, total_jobs_completed=0,
            total_booking_requests=0, total_accepted_bookings=0,
            acceptance_rate=0, response_time_minutes=0,
        )
        db.add(acc)
        db.flush()
    return acc


def get_or_create_customer(db: Session, user_id: str) -> CustomerAccount:
    acc = db.get(CustomerAccount, user_id)
    if not acc:
        acc = CustomerAccount(user_id=user_id, total_spent=0, total_bookings=0)
        db.add(acc)
        db.flush()
    return acc


def _lock_artisan(db: Session, user_id: str) -> ArtisanAccount:
    get_or_create_artisan(db, user_id)
    # populate_existing would drop unflushed edits
    db.flush()
    return db.execute(
        select(ArtisanAccount).where(ArtisanAccount.user_id == user_id)
        .with_for_update().execution_options(populate_existing=True)
    ).scalar_one()


def _increment(db: Session, model, user_id: str, **values) -> None:
    """Apply counter changes inside the UPDATE so concurrent writers add up instead of overwriting."""
    acc = db.get(model, user_id)
    db.execute(
        update(model).where(model.user_id == user_id).values(**values)
        .execution_options(synchronize_session=False)
    )
    if acc is not None:
        db.expire(acc, list(values))


def _acceptance_rate(acc: ArtisanAccount) -> int:
    if not acc.total_booking_requests:
        return 0
    return round(acc.total_accepted_bookings / acc.total_booking_requests * 100)


def record_booking_request(db: Session, artisan_id: str) -> None:
    acc = _lock_artisan(db, artisan_id)
    acc.total_booking_requests += 1
    acc.acceptance_rate = _acceptance_rate(acc)


def record_acceptance(db: Session, artisan_id: str, requested_at: datetime, accepted_at: datetime) -> None:
    acc = _lock_artisan(db, artisan_id)
    minutes = max(0, round((accepted_at - requested_at).total_seconds() / 60))
    # running average over previously accepted bookings
    prev = acc.total_accepted_bookings
    acc.response_time_minutes = round((acc.response_time_minutes * prev + minutes) / (prev + 1))
    acc.total_accepted_bookings = prev + 1
    acc.acceptance_rate = _acceptance_rate(acc)


def record_decline(db: Session, artisan_id: str) -> None:
    acc = _lock_artisan(db, artisan_id)
    acc.acceptance_rate = _acceptance_rate(acc)


def record_job_completed(db: Session, artisan_id: str) -> None:
    get_or_create_artisan(db, artisan_id)
    _increment(db, ArtisanAccount, artisan_id, total_jobs_completed=ArtisanAccount.total_jobs_completed + 1)


def credit_earnings(db: Session, artisan_id: str, amount: int) -> None:
    get_or_create_artisan(db, artisan_id)
    _increment(db, ArtisanAccount, artisan_id, total_earnings=ArtisanAccount.total_earnings + amount)


def add_customer_spend(db: Session, customer_id: str, amount: int) -> None:
    get_or_create_customer(db, customer_id)
    _increment(
        db, CustomerAccount, customer_id,
        total_spent=CustomerAccount.total_spent + amount,
        total_bookings=CustomerAccount.total_bookings + 1,
    )


def reverse_customer_spend(db: Session, customer_id: str, amount: int) -> None:
    get_or_create_customer(db, customer_id)
    _increment(
        db, CustomerAccount, customer_id,
        total_spent=case((CustomerAccount.total_spent > amount, CustomerAccount.total_spent - amount), else_=0),
        total_bookings=case((CustomerAccount.total_bookings > 0, CustomerAccount.total_bookings - 1), else_=0),
    )
