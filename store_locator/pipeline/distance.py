"""Great-circle distance between coordinate pairs."""

from __future__ import annotations

import math
from typing import Any

from store_locator.common.models import Coordinates

EARTH_RADIUS_METERS = 6_371_000.0
METERS_PER_MILE = 1609.34


def _coerce(value: Any) -> Coordinates:
    coords = Coordinates.parse(value)
    if coords is None:
        raise ValueError(f"Invalid coordinates provided: {value!r}")
    return coords


def distance_miles(a: Any, b: Any) -> float:
    """Haversine distance in miles between two ``(lon, lat)`` points."""
    first = _coerce(a)
    second = _coerce(b)
    if first == second:
        return 0.0

    phi1 = math.radians(first.latitude)
    phi2 = math.radians(second.latitude)
    d_phi = math.radians(second.latitude - first.latitude)
    d_lambda = math.radians(second.longitude - first.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    h = min(1.0, h)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c / METERS_PER_MILE


def format_distance(miles: Any) -> str:
    if isinstance(miles, bool) or not isinstance(miles, (int, float)) or math.isnan(miles):
        return "Unknown distance"
    rounded = round(float(miles), 1)
    text = str(int(rounded)) if rounded.is_integer() else str(rounded)
    return f"{text} miles"
