"""
Matching engine configuration constants.

Defines the condition ordering, score caps and weights, and the
geographic and escrow parameters used by the matching algorithm.
"""

from decimal import Decimal

from app.config import settings

# Card condition, best to worst. Lower index = better condition.
CONDITION_ORDER = ("NM", "LP", "MP", "HP", "DMG")

# Score contributions per match type (relative to the scoring user)
MATCH_TYPE_POINTS = {
    "two_way": 30.0,
    "one_way_buy": 15.0,
    "one_way_sell": 10.0,
}

# Card count: 2.5 points per wanted card, capped
POINTS_PER_CARD = 2.5
MAX_CARD_POINTS = 25.0

# Value: 1 point per $10 wanted, capped ($200 saturates)
VALUE_DIVISOR = 10.0
MAX_VALUE_POINTS = 20.0

# Distance: 15 points at 0 km, losing one point per 3.33 km
MAX_DISTANCE_POINTS = 15.0
KM_PER_DISTANCE_POINT = 3.33

# Price efficiency: up to 10 points for asking below max price
MAX_PRICE_EFFICIENCY_POINTS = 10.0
DEFAULT_PRICE_EFFICIENCY = 0.5

# Flat penalty when any card's asking price exceeds the buyer's max
PRICE_WARNING_PENALTY = 5.0

EARTH_RADIUS_KM = 6371.0

DEFAULT_RADIUS_KM = settings.MATCHING_DEFAULT_RADIUS_KM

# Escrow window after mutual confirmation
ESCROW_DAYS = settings.MATCHING_ESCROW_DAYS

# Money rounding
CENT = Decimal("0.01")
