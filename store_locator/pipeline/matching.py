"""Query matching: radius search around a point and fuzzy token scoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from store_locator.common.constants import (
    FUZZY_MATCH_THRESHOLD,
    FUZZY_RESULT_LIMIT,
    MODE_FUZZY,
    MODE_GEOGRAPHIC,
    RADIUS_ANY,
)
from store_locator.common.models import Coordinates, LocationRecord, Radius, SearchFilters, SearchResult
from store_locator.common.text import normalize_search_text, tokenize
from store_locator.pipeline.distance import distance_miles


@dataclass(frozen=True)
class MatchOutcome:
    mode: str | None
    center: Coordinates | None
    results: list[SearchResult] = field(default_factory=list)
    found: bool = False


def apply_filters(records: Iterable[LocationRecord], filters: SearchFilters) -> list[LocationRecord]:
    return [record for record in records if filters.matches(record)]


def geographic_matches(
    records: Sequence[LocationRecord],
    center: Coordinates,
    radius: Radius,
) -> list[SearchResult]:
    results: list[SearchResult] = []
    for index, record in enumerate(records):
        if record.coordinates is None:
            continue
        miles = distance_miles(center, record.coordinates)
        if radius != RADIUS_ANY and miles > radius:
            continue
        results.append(SearchResult(record=record, rank_key=(miles, index), distance_miles=miles))
    results.sort(key=lambda result: result.rank_key)
    return results


def searchable_text(record: LocationRecord) -> str:
    parts = (record.name, record.address, record.geo_address, record.country)
    return normalize_search_text(" ".join(part for part in parts if part))


def fuzzy_matches(
    records: Sequence[LocationRecord],
    query: str,
    threshold: float = FUZZY_MATCH_THRESHOLD,
    limit: int = FUZZY_RESULT_LIMIT,
) -> list[SearchResult]:
    """Score records by the share of query tokens found in their text.

    A token counts when it is a substring of the record's normalised name,
    address, geocoding address and country. Records below ``threshold`` are
    dropped; the rest are ordered by ratio, then raw count, then store order.
    """
    tokens = tokenize(query)
    if not tokens:
        return []

    results: list[SearchResult] = []
    for index, record in enumerate(records):
        if record.coordinates is None:
            continue
        haystack = searchable_text(record)
        count = sum(1 for token in tokens if token in haystack)
        ratio = count / len(tokens)
        if count == 0 or ratio < threshold:
            continue
        results.append(
            SearchResult(
                record=record,
                rank_key=(-ratio, -count, index),
                match_ratio=ratio,
                match_count=count,
            )
        )
    results.sort(key=lambda result: result.rank_key)
    return results[:limit]


def literal_match(records: Sequence[LocationRecord], query: str) -> LocationRecord | None:
    needle = query.strip().casefold()
    if not needle:
        return None
    for record in records:
        if record.coordinates is None:
            continue
        for value in (record.name, record.address):
            if value and needle in value.casefold():
                return record
    return None


class MatchEngine:
    def __init__(self, fuzzy_threshold: float = FUZZY_MATCH_THRESHOLD, fuzzy_limit: int = FUZZY_RESULT_LIMIT) -> None:
        self.fuzzy_threshold = fuzzy_threshold
        self.fuzzy_limit = fuzzy_limit

    def match(
        self,
        query: Any,
        radius: Radius,
        filters: SearchFilters,
        records: Sequence[LocationRecord],
        geocode: Callable[[str], Coordinates | None] | None = None,
    ) -> MatchOutcome:
        """Resolve ``query`` to a center and rank ``records`` against it.

        Text queries try, in order: a literal name/address hit, fuzzy token
        scoring, then ``geocode``. Exceptions raised by ``geocode`` propagate.
        """
        candidates = [record for record in apply_filters(records, filters) if record.coordinates is not None]

        point = query if isinstance(query, Coordinates) else None
        if point is None and not isinstance(query, str):
            point = Coordinates.parse(query)
            if point is None:
                return MatchOutcome(mode=None, center=None)
        if point is not None:
            return self._geographic(candidates, point, radius)

        text = query.strip()
        if not text:
            return MatchOutcome(mode=None, center=None)

        hit = literal_match(candidates, text)
        if hit is not None:
            return self._geographic(candidates, hit.coordinates, radius)

        fuzzy = fuzzy_matches(candidates, text, threshold=self.fuzzy_threshold, limit=self.fuzzy_limit)
        if fuzzy:
            return MatchOutcome(mode=MODE_FUZZY, center=fuzzy[0].record.coordinates, results=fuzzy, found=True)

        if geocode is not None:
            resolved = geocode(text)
            if resolved is not None:
                return self._geographic(candidates, resolved, radius)

        return MatchOutcome(mode=None, center=None)

    def _geographic(self, candidates: Sequence[LocationRecord], center: Coordinates, radius: Radius) -> MatchOutcome:
        return MatchOutcome(
            mode=MODE_GEOGRAPHIC,
            center=center,
            results=geographic_matches(candidates, center, radius),
            found=True,
        )
