"""
Condition, foil, and edition predicates.

Each predicate decides one wishlist constraint for one offered
collection item. They are independent: a collection item satisfies a
wishlist entry only when all three hold (and both refer to the same
card), which the caller checks.

All three accept either the enum members from ``app.models`` or their
raw string values, since ``str``-based enums compare equal to both.
"""

from collections.abc import Collection

from app.matching_engine.config import CONDITION_ORDER
from app.models.collection import Condition
from app.models.wishlist import EditionPreference, FoilPreference


def _condition_rank(condition: Condition | str) -> int:
    value = condition.value if isinstance(condition, Condition) else condition
    return CONDITION_ORDER.index(value)


def condition_meets_minimum(
    offered: Condition | str,
    required: Condition | str,
) -> bool:
    """
    True when *offered* is at least as good as *required*.

    Ranks run best to worst (NM=0 … DMG=4), so "meets" means the
    offered rank is numerically less than or equal to the required one.
    """
    return _condition_rank(offered) <= _condition_rank(required)


def foil_matches(
    offered_is_foil: bool,
    preference: FoilPreference | str,
) -> bool:
    """Check an offered finish against a wishlist foil preference."""
    if preference == FoilPreference.FOIL_ONLY:
        return offered_is_foil
    if preference == FoilPreference.NON_FOIL:
        return not offered_is_foil
    return True


def edition_matches(
    offered_catalog_id: str,
    preference: EditionPreference | str,
    specific_set: Collection[str],
) -> bool:
    """
    Check an offered printing against a wishlist edition preference.

    ``specific`` wishes accept only the listed printings; an empty list
    therefore accepts nothing.
    """
    if preference == EditionPreference.SPECIFIC:
        return offered_catalog_id in specific_set
    return True
