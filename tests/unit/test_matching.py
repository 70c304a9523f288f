from __future__ import annotations

import pytest

from store_locator.common.constants import MODE_FUZZY, MODE_GEOGRAPHIC, RADIUS_ANY
from store_locator.common.models import Coordinates, LocationRecord, SearchFilters
from store_locator.pipeline.matching import MatchEngine, fuzzy_matches, geographic_matches, literal_match

RIVERSIDE = Coordinates(-117.3755, 33.9806)

RECORDS = [
    LocationRecord(
        id="rec1",
        name="GB Riverside",
        address="3400 Central Ave, Riverside, CA 92506",
        coordinates=Coordinates(-117.4, 33.95),
        is_premium=True,
        country="US",
        regions=("California",),
    ),
    LocationRecord(
        id="rec2",
        name="GB Corona",
        address="1200 Main St, Corona, CA 92882",
        coordinates=Coordinates(-117.566, 33.875),
        country="US",
        regions=("California",),
    ),
    LocationRecord(
        id="rec3",
        name="GB Gold",
        address="Los Angeles, CA",
        coordinates=Coordinates(-118.2437, 34.0522),
        is_premium=True,
        country="US",
        regions=("California",),
    ),
    LocationRecord(
        id="rec4",
        name="GB Austin",
        address="100 Congress Ave, Austin, TX 78701",
        coordinates=Coordinates(-97.7431, 30.2672),
        country="US",
        regions=("Texas",),
    ),
    LocationRecord(id="rec5", name="GB Pending", address="Somewhere, CA"),
]


def test_geographic_matches_respects_radius_and_sorts_by_distance():
    results = geographic_matches(RECORDS, RIVERSIDE, 15.0)

    assert [result.record.id for result in results] == ["rec1", "rec2"]
    assert results[0].distance_miles < results[1].distance_miles <= 15.0


def test_geographic_matches_any_radius_includes_every_located_record():
    results = geographic_matches(RECORDS, RIVERSIDE, RADIUS_ANY)

    assert [result.record.id for result in results] == ["rec1", "rec2", "rec3", "rec4"]
    distances = [result.distance_miles for result in results]
    assert distances == sorted(distances)


def test_geographic_matches_breaks_ties_by_store_order():
    twin = LocationRecord(id="twin", name="GB Twin", coordinates=Coordinates(-117.4, 33.95))
    results = geographic_matches([RECORDS[0], twin], RIVERSIDE, RADIUS_ANY)
    assert [result.record.id for result in results] == ["rec1", "twin"]


def test_fuzzy_matches_scores_token_share():
    results = fuzzy_matches(RECORDS, "riverside ca")

    assert results[0].record.id == "rec1"
    assert results[0].match_ratio == 1.0
    assert results[0].match_count == 2
    # "ca" alone gives the other California records a half match.
    assert {result.record.id for result in results[1:]} == {"rec2", "rec3"}
    assert all(result.match_ratio == 0.5 for result in results[1:])
    assert "rec4" not in {result.record.id for result in results}


def test_fuzzy_matches_applies_threshold_and_limit():
    assert [result.record.id for result in fuzzy_matches(RECORDS, "riverside ca", threshold=0.75)] == ["rec1"]
    assert len(fuzzy_matches(RECORDS, "riverside ca", limit=2)) == 2
    assert fuzzy_matches(RECORDS, "   ") == []


def test_fuzzy_matches_ignores_diacritics_and_punctuation():
    results = fuzzy_matches(RECORDS, "Riversidé, CA!")
    assert results[0].record.id == "rec1"


def test_literal_match_skips_records_without_coordinates():
    assert literal_match(RECORDS, "gb corona").id == "rec2"
    assert literal_match(RECORDS, "pending") is None


def test_engine_coordinate_query_runs_geographic_search():
    outcome = MatchEngine().match([-117.3755, 33.9806], 10, SearchFilters(), RECORDS)

    assert outcome.found
    assert outcome.mode == MODE_GEOGRAPHIC
    assert outcome.center == RIVERSIDE
    assert [result.record.id for result in outcome.results] == ["rec1"]


def test_engine_applies_filters_before_ranking():
    outcome = MatchEngine().match(RIVERSIDE, RADIUS_ANY, SearchFilters(premium_only=True), RECORDS)
    assert [result.record.id for result in outcome.results] == ["rec1", "rec3"]

    texas = MatchEngine().match(RIVERSIDE, RADIUS_ANY, SearchFilters(region="texas"), RECORDS)
    assert [result.record.id for result in texas.results] == ["rec4"]


def test_engine_literal_hit_centers_on_record():
    outcome = MatchEngine().match("gb corona", 5, SearchFilters(), RECORDS)

    assert outcome.mode == MODE_GEOGRAPHIC
    assert outcome.center == RECORDS[1].coordinates
    assert [result.record.id for result in outcome.results] == ["rec2"]


def test_engine_falls_back_to_fuzzy_matching():
    outcome = MatchEngine().match("riverside california", 10, SearchFilters(), RECORDS)

    assert outcome.mode == MODE_FUZZY
    assert outcome.results[0].record.id == "rec1"
    assert outcome.results[0].distance_miles is None


def test_engine_geocodes_when_nothing_matches_locally():
    calls: list[str] = []

    def geocode(text: str):
        calls.append(text)
        return Coordinates(-97.68, 30.51)

    outcome = MatchEngine().match("round rock tx", 25, SearchFilters(), RECORDS, geocode=geocode)

    assert calls == ["round rock tx"]
    assert outcome.mode == MODE_GEOGRAPHIC
    assert [result.record.id for result in outcome.results] == ["rec4"]


def test_engine_reports_not_found():
    engine = MatchEngine()
    assert not engine.match("zzzz", 10, SearchFilters(), RECORDS, geocode=lambda _t: None).found
    assert not engine.match("zzzz", 10, SearchFilters(), RECORDS).found
    assert not engine.match(["x", "y"], 10, SearchFilters(), RECORDS).found
    assert not engine.match("   ", 10, SearchFilters(), RECORDS).found


def test_engine_propagates_geocoder_errors():
    def geocode(_text: str):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        MatchEngine().match("zzzz", 10, SearchFilters(), RECORDS, geocode=geocode)
