from decimal import Decimal, ROUND_HALF_UP

from artisan_booking.core.config import settings


def round_half_up(value) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_platform_fee(amount: int, percentage: float | None = None) -> int:
    pct = settings.PLATFORM_FEE_PERCENTAGE if percentage is None else percentage
    return round_half_up(Decimal(int(amount)) * Decimal(str(pct)) / Decimal(100))


def calculate_total_amount(amount: int, percentage: float | None = None) -> int:
    return int(amount) + calculate_platform_fee(amount, percentage)


def price_terms(amount: int) -> dict:
    """agreed price, fee and total for a finalized price. Used at every finalization point."""
    fee = calculate_platform_fee(amount)
    return {"agreed_price": int(amount), "platform_fee": fee, "total_amount": int(amount) + fee}
