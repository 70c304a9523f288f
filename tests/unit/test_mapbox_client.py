from __future__ import annotations

import logging
import threading
import time

import pytest

from store_locator.common.http import HttpRequestError, RateLimitedError
from store_locator.common.models import Coordinates
from store_locator.sources.mapbox import MapboxClient

CONFIG = {"token_env": "UNUSED", "batch_size": 5, "batch_delay_seconds": 0.2, "max_batch_addresses": 50}


class FakeHttpClient:
    def __init__(self, handler):
        self.handler = handler
        self.calls: list[tuple[str, dict]] = []
        self.lock = threading.Lock()

    def get_json(self, url: str, **kwargs):
        with self.lock:
            self.calls.append((url, kwargs))
        return self.handler(url, kwargs)

    def close(self):
        return None


def _feature_payload(lon: float, lat: float, place_name: str = "Somewhere"):
    return {"features": [{"center": [lon, lat], "place_name": place_name}]}


def test_forward_geocode_requests_single_best_match():
    client = FakeHttpClient(lambda _url, _kwargs: _feature_payload(-117.3755, 33.9806))
    mapbox = MapboxClient(CONFIG, http_client=client, token="pk.test")

    coords = mapbox.forward_geocode("Riverside, CA")

    url, kwargs = client.calls[0]
    assert url == "https://api.mapbox.com/geocoding/v5/mapbox.places/Riverside%2C%20CA.json"
    assert kwargs["params"]["limit"] == 1
    assert kwargs["params"]["access_token"] == "pk.test"
    assert kwargs["params"]["types"] == "address,place,poi"
    assert kwargs["source_type"] == "mapbox"
    assert coords == Coordinates(-117.3755, 33.9806)


def test_forward_geocode_returns_none_without_features():
    mapbox = MapboxClient(CONFIG, http_client=FakeHttpClient(lambda *_: {"features": []}), token="pk.test")
    assert mapbox.forward_geocode("Nowhere at all") is None


def test_reverse_geocode_returns_place_name():
    client = FakeHttpClient(lambda _url, _kwargs: _feature_payload(-117.4, 33.95, "Riverside, California"))
    mapbox = MapboxClient(CONFIG, http_client=client, token="pk.test")

    assert mapbox.reverse_geocode(Coordinates(-117.4, 33.95)) == "Riverside, California"
    assert client.calls[0][0].endswith("/-117.4,33.95.json")


def test_geocode_batch_rejects_more_than_fifty_addresses():
    mapbox = MapboxClient(CONFIG, http_client=FakeHttpClient(lambda *_: {}), token="pk.test")
    with pytest.raises(ValueError, match="50"):
        mapbox.geocode_batch([f"{i} Main St" for i in range(51)])


def test_geocode_batch_isolates_item_failures():
    def handler(url, _kwargs):
        if "Broken" in url:
            raise RateLimitedError("Rate limited: HTTP 429", status_code=429)
        if "Unknown" in url:
            return {"features": []}
        return _feature_payload(-117.0, 34.0)

    mapbox = MapboxClient(CONFIG, http_client=FakeHttpClient(handler), token="pk.test", sleep=lambda _s: None)

    response = mapbox.geocode_batch(["1 Good St", "2 Broken St", "3 Unknown St", "4 Good St"])

    assert response["count"] == 4
    assert response["successful"] == 2
    results = response["results"]
    assert [item["success"] for item in results] == [True, False, False, True]
    assert results[0]["coordinates"] == Coordinates(-117.0, 34.0)
    assert "error" in results[1]
    assert "error" not in results[2]


def test_geocode_batch_runs_five_at_a_time_with_delay_between_batches():
    active = 0
    peak = 0
    lock = threading.Lock()

    def handler(_url, _kwargs):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return _feature_payload(-117.0, 34.0)

    sleeps: list[float] = []
    mapbox = MapboxClient(CONFIG, http_client=FakeHttpClient(handler), token="pk.test", sleep=sleeps.append)

    response = mapbox.geocode_batch([f"{i} Main St" for i in range(12)])

    assert response["successful"] == 12
    assert peak <= 5
    # Three batches (5, 5, 2) means two pauses.
    assert sleeps == [0.2, 0.2]


def test_geocode_batch_reverse_mode():
    mapbox = MapboxClient(
        CONFIG,
        http_client=FakeHttpClient(lambda *_: _feature_payload(-117.4, 33.95, "Riverside")),
        token="pk.test",
    )
    response = mapbox.geocode_batch([[-117.4, 33.95], ["bad", "pair"]], "reverse")
    assert [item["success"] for item in response["results"]] == [True, False]
    assert response["results"][0]["address"] == "Riverside"


def test_geocode_batch_logs_item_failure(caplog):
    def handler(_url, _kwargs):
        raise HttpRequestError("HTTP status: 401", status_code=401)

    logger = logging.getLogger("tests.mapbox")
    mapbox = MapboxClient(CONFIG, http_client=FakeHttpClient(handler), token="pk.test", logger=logger)
    with caplog.at_level("WARNING", logger="tests.mapbox"):
        response = mapbox.geocode_batch(["1 Main St"])

    assert response["successful"] == 0
    assert any("1 Main St" in message for message in caplog.messages)
