"""
Match score calculation.

Ranks candidate trades with an additive model. Each signal has a capped
contribution so no single factor dominates:

    match type        0–30   (two-way 30, one-way buy 15, one-way sell 10)
    card count        0–25   (2.5 per wanted card)
    value             0–20   ($10 per point, $200 saturates)
    distance          0–15   (15 at 0 km, 0 from ~50 km; 0 when unknown)
    price efficiency  0–10   (cheaper relative to max price scores higher)
    price warning     −5     (once, if any card is above the buyer's max)

Two-way trades dominate; proximity and pricing break ties. The total is
rounded half-up to 2 decimals and deliberately not clamped, so the warning
penalty can take a near-empty match slightly below zero.
"""

from app.matching_engine.config import (
    DEFAULT_PRICE_EFFICIENCY,
    KM_PER_DISTANCE_POINT,
    MATCH_TYPE_POINTS,
    MAX_CARD_POINTS,
    MAX_DISTANCE_POINTS,
    MAX_PRICE_EFFICIENCY_POINTS,
    MAX_VALUE_POINTS,
    POINTS_PER_CARD,
    PRICE_WARNING_PENALTY,
    VALUE_DIVISOR,
)
from app.matching_engine.pricing import round_half_up
from app.models.match import MatchType


def calculate_match_score(
    *,
    match_type: MatchType | str,
    cards_a_wants: int,
    cards_b_wants: int,
    value_a_wants,
    value_b_wants,
    distance_km: float | None,
    has_price_warnings: bool,
    price_efficiency: float,
) -> float:
    """
    Combine the match signals into a single comparable score.

    ``price_efficiency`` is in [0, 1]: 1 means asking prices sit at the
    buyer's max price, lower means cheaper.
    """
    type_key = match_type.value if isinstance(match_type, MatchType) else match_type
    score = MATCH_TYPE_POINTS.get(type_key, MATCH_TYPE_POINTS["one_way_sell"])

    total_cards = cards_a_wants + cards_b_wants
    score += min(total_cards * POINTS_PER_CARD, MAX_CARD_POINTS)

    total_value = float(value_a_wants or 0) + float(value_b_wants or 0)
    score += min(total_value / VALUE_DIVISOR, MAX_VALUE_POINTS)

    if distance_km is not None:
        score += max(0.0, MAX_DISTANCE_POINTS - distance_km / KM_PER_DISTANCE_POINT)

    score += (1 - price_efficiency) * MAX_PRICE_EFFICIENCY_POINTS

    if has_price_warnings:
        score -= PRICE_WARNING_PENALTY

    return round_half_up(score)


def calculate_price_efficiency(priced_cards) -> float:
    """
    Average ``asking_price / max_price`` over cards that have both, capped at 1.

    *priced_cards* is an iterable of objects with ``asking_price`` and
    ``max_price`` attributes. Falls back to a neutral 0.5 when no card
    carries both prices.
    """
    ratios = [
        float(c.asking_price) / float(c.max_price)
        for c in priced_cards
        if c.asking_price is not None and c.max_price is not None and c.max_price > 0
    ]
    if not ratios:
        return DEFAULT_PRICE_EFFICIENCY
    return min(sum(ratios) / len(ratios), 1.0)
