"""
Great-circle distance between two users' locations.
"""

import math

from app.matching_engine.config import DEFAULT_RADIUS_KM, EARTH_RADIUS_KM
from app.matching_engine.pricing import round_half_up


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Haversine distance in km between two WGS84 points given in degrees.

    Rounded half-up to 2 decimal places. Identical points give 0.0.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round_half_up(EARTH_RADIUS_KM * c)


def distance_between(loc_a, loc_b) -> float | None:
    """
    Distance between two objects with ``latitude``/``longitude``.

    Returns ``None`` ("distance unknown") when either side is missing.
    """
    if loc_a is None or loc_b is None:
        return None
    if None in (loc_a.latitude, loc_a.longitude, loc_b.latitude, loc_b.longitude):
        return None
    return calculate_distance(loc_a.latitude, loc_a.longitude, loc_b.latitude, loc_b.longitude)


def within_trade_radius(
    distance_km: float,
    my_radius_km: float | None,
    their_radius_km: float | None,
) -> bool:
    """A pair is close enough when either user's radius covers the other."""
    mine = my_radius_km or DEFAULT_RADIUS_KM
    theirs = their_radius_km or DEFAULT_RADIUS_KM
    return distance_km <= mine or distance_km <= theirs
