"""Data models used across the search pipeline."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Mapping, Sequence, Union

from store_locator.common.constants import FILTER_ALL, RADIUS_ANY


@dataclass(frozen=True)
class Coordinates:
    longitude: float
    latitude: float

    def is_valid(self) -> bool:
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180

    def as_pair(self) -> list[float]:
        return [self.longitude, self.latitude]

    @classmethod
    def parse(cls, value: Any) -> "Coordinates | None":
        """Build coordinates from ``[lon, lat]``, a mapping, or an instance.

        Returns None for anything malformed or out of range.
        """
        if isinstance(value, Coordinates):
            return value if value.is_valid() else None
        if isinstance(value, Mapping):
            lon = value.get("longitude", value.get("lng", value.get("lon")))
            lat = value.get("latitude", value.get("lat"))
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and len(value) == 2:
            lon, lat = value
        else:
            return None
        try:
            coords = cls(longitude=float(lon), latitude=float(lat))
        except (TypeError, ValueError):
            return None
        if math.isnan(coords.longitude) or math.isnan(coords.latitude):
            return None
        return coords if coords.is_valid() else None


@dataclass(frozen=True)
class Contact:
    instructor: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class LocationRecord:
    id: str
    name: str
    address: str | None = None
    geo_address: str | None = None
    coordinates: Coordinates | None = None
    is_premium: bool = False
    country: str | None = None
    regions: tuple[str, ...] = ()
    contact: Contact = field(default_factory=Contact)

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None

    def with_coordinates(self, coordinates: Coordinates) -> "LocationRecord":
        return replace(self, coordinates=coordinates)

    @property
    def geocode_query(self) -> str | None:
        return self.geo_address or self.address

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["coordinates"] = self.coordinates.as_pair() if self.coordinates else None
        out["regions"] = list(self.regions)
        return out


Radius = Union[float, str]


def parse_radius(value: Any) -> Radius:
    """Return a non-negative mile radius or ``"any"``."""
    if isinstance(value, str):
        cleaned = value.strip().lower()
        if cleaned == RADIUS_ANY:
            return RADIUS_ANY
        value = cleaned
    if isinstance(value, bool):
        raise ValueError(f"Invalid search radius: {value!r}")
    try:
        radius = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid search radius: {value!r}") from exc
    if math.isnan(radius) or radius < 0:
        raise ValueError(f"Invalid search radius: {value!r}")
    return radius


@dataclass(frozen=True)
class SearchFilters:
    premium_only: bool = False
    country: str = FILTER_ALL
    region: str = FILTER_ALL

    def matches(self, record: LocationRecord) -> bool:
        if self.premium_only and not record.is_premium:
            return False
        wanted_country = _filter_value(self.country)
        if wanted_country is not None:
            if (record.country or "").strip().casefold() != wanted_country:
                return False
        wanted_region = _filter_value(self.region)
        if wanted_region is not None:
            if wanted_region not in {region.strip().casefold() for region in record.regions}:
                return False
        return True


def _filter_value(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().casefold()
    if not cleaned or cleaned == FILTER_ALL:
        return None
    return cleaned


@dataclass(frozen=True)
class SearchResult:
    record: LocationRecord
    rank_key: tuple
    distance_miles: float | None = None
    match_ratio: float | None = None
    match_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out = self.record.to_dict()
        out["distance_miles"] = self.distance_miles
        out["match_ratio"] = self.match_ratio
        out["match_count"] = self.match_count
        return out


@dataclass(frozen=True)
class SearchOutcome:
    results: list[SearchResult]
    status: str
    state: str
    generation: int
    error_kind: str | None = None
    mode: str | None = None
    center: Coordinates | None = None
    superseded: bool = False
    records_total: int = 0
    records_unresolved: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "state": self.state,
            "error_kind": self.error_kind,
            "mode": self.mode,
            "center": self.center.as_pair() if self.center else None,
            "generation": self.generation,
            "superseded": self.superseded,
            "records_total": self.records_total,
            "records_unresolved": self.records_unresolved,
            "count": len(self.results),
            "results": [result.to_dict() for result in self.results],
        }
