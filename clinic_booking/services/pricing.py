"""Per-session pricing for treatment packages.

Packages are priced with a fixed discount per session count rather than a
formula, so the tiers live in a lookup table.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from clinic_booking.core.errors import BookingValidationError

MIN_SESSION_COUNT = 1
MAX_SESSION_COUNT = 10

SESSION_DISCOUNT_TIERS: dict[int, int] = {
    1: 0,
    3: 25,
    6: 35,
    10: 45,
}

_CENT = Decimal("0.01")
_PACKAGE_COUNT_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class PriceBreakdown:
    session_count: int
    unit_price: Decimal
    discount_percent: int
    total_amount: Decimal


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def clamp_session_count(session_count: int) -> int:
    return max(MIN_SESSION_COUNT, min(MAX_SESSION_COUNT, session_count))


def discount_for_session_count(session_count: int) -> int:
    return SESSION_DISCOUNT_TIERS.get(session_count, 0)


def session_count_from_package(label: str) -> int:
    """Extract the session count from a package label like ``"3 sessions"``."""
    match = _PACKAGE_COUNT_RE.search(str(label))
    if not match:
        raise BookingValidationError(f"Cannot read a session count from package {label!r}")
    return int(match.group(0))


def price_breakdown(
    base_price: Decimal | int | str,
    session_count: int,
    unit_price: Decimal | int | str | None = None,
    discount_percent: int | None = None,
) -> PriceBreakdown:
    """Fill in the commercial terms of a booking.

    ``unit_price`` and ``discount_percent`` supplied by the caller are kept
    as given; only the missing ones are derived from ``base_price`` and the
    discount tiers.
    """
    count = clamp_session_count(session_count)
    if discount_percent is None:
        discount_percent = discount_for_session_count(count)
    if not 0 <= discount_percent <= 100:
        raise BookingValidationError("Discount percent must be between 0 and 100")

    if unit_price is None:
        multiplier = Decimal(100 - discount_percent) / Decimal(100)
        unit = round_money(Decimal(str(base_price)) * multiplier)
    else:
        unit = round_money(Decimal(str(unit_price)))
    if unit < 0:
        raise BookingValidationError("Unit price must not be negative")

    return PriceBreakdown(
        session_count=count,
        unit_price=unit,
        discount_percent=discount_percent,
        total_amount=round_money(unit * count),
    )
