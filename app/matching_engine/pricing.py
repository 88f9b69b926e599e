"""
Asking-price calculation for collection items.

Sellers either price as a percentage of the live market price for the
item's finish, or pin a fixed price. All arithmetic uses ``Decimal``
rounded half-up to cents.
"""

from decimal import Decimal, ROUND_HALF_UP

from app.matching_engine.config import CENT
from app.models.collection import PriceMode


def _to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: float) -> float:
    """Round to cents with halves going up (1.125 -> 1.13), unlike ``round``."""
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def calculate_asking_price(
    price_mode: PriceMode | str,
    price_percentage,
    price_fixed,
    base_price,
    is_foil: bool,
    foil_price,
) -> Decimal | None:
    """
    Return the price a collection item is offered at, or ``None``.

    1. The market price is the foil price for foil items, else the base price.
    2. Fixed mode with a fixed price returns it as-is, whether or not a
       market price exists.
    3. Without a market price the item cannot be priced (``None``).
    4. Otherwise ``market * percentage / 100`` rounded to cents.
    """
    market_price = _to_decimal(foil_price if is_foil else base_price)

    if price_mode == PriceMode.FIXED and price_fixed is not None:
        return _to_decimal(price_fixed)

    if market_price is None:
        return None

    percentage = _to_decimal(price_percentage)
    return (market_price * percentage / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


def price_exceeds_max(asking_price, max_price) -> bool:
    """True only when both prices are known and asking is above max."""
    if asking_price is None or max_price is None:
        return False
    return _to_decimal(asking_price) > _to_decimal(max_price)
