"""Mapbox geocoding endpoint: forward, reverse, and rate-limited batches."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Sequence
from urllib.parse import quote

from store_locator.common.config_loader import resolve_secret
from store_locator.common.constants import (
    GEOCODE_BATCH_DELAY_SECONDS,
    GEOCODE_BATCH_SIZE,
    GEOCODE_MAX_BATCH_ADDRESSES,
    MAPBOX_GEOCODING_URL,
)
from store_locator.common.http import HttpClient, TimeoutConfig
from store_locator.common.logging import get_logger
from store_locator.common.models import Coordinates

FORWARD = "forward"
REVERSE = "reverse"
DEFAULT_TYPES = ("address", "place", "poi")


def _first_feature(payload: dict) -> dict | None:
    features = payload.get("features") or []
    return features[0] if features else None


def _chunked(values: Sequence, size: int):
    for i in range(0, len(values), size):
        yield values[i : i + size]


class MapboxClient:
    """Geocode endpoint used by the resolver.

    ``geocode_batch`` mirrors the proxy contract the widget relied on: at most
    ``max_batch_addresses`` items per call, processed in parallel batches of
    ``batch_size`` with ``batch_delay`` seconds between batches.
    """

    def __init__(
        self,
        config: dict,
        http_client: HttpClient | None = None,
        token: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.token = token or resolve_secret(config, "token_env")
        self.client = http_client or HttpClient(timeout=TimeoutConfig(connect=5.0, read=10.0))
        self.types = ",".join(config.get("types") or DEFAULT_TYPES)
        self.language = config.get("language", "en")
        self.batch_size = int(config.get("batch_size", GEOCODE_BATCH_SIZE))
        self.batch_delay = float(config.get("batch_delay_seconds", GEOCODE_BATCH_DELAY_SECONDS))
        self.max_batch_addresses = int(config.get("max_batch_addresses", GEOCODE_MAX_BATCH_ADDRESSES))
        self.sleep = sleep
        self.logger = get_logger(logger)

    def _get(self, query: str, params: dict[str, Any]) -> dict:
        return self.client.get_json(
            f"{MAPBOX_GEOCODING_URL}/{query}.json",
            source_type="mapbox",
            params={"access_token": self.token, **params},
        )

    def forward_geocode(self, address: str) -> Coordinates | None:
        payload = self._get(
            quote(address, safe=""),
            {
                "limit": 1,
                "types": self.types,
                "language": self.language,
                "autocomplete": "false",
                "fuzzyMatch": "false",
            },
        )
        feature = _first_feature(payload)
        if feature is None:
            return None
        return Coordinates.parse(feature.get("center"))

    def reverse_geocode(self, coordinates: Coordinates) -> str | None:
        query = quote(f"{coordinates.longitude},{coordinates.latitude}", safe=",")
        payload = self._get(query, {"limit": 1})
        feature = _first_feature(payload)
        if feature is None:
            return None
        return feature.get("place_name") or None

    def _geocode_one(self, item: Any, geocode_type: str) -> dict[str, Any]:
        try:
            if geocode_type == FORWARD:
                coordinates = self.forward_geocode(str(item))
                if coordinates is None:
                    return {"address": item, "success": False}
                return {"address": item, "coordinates": coordinates, "success": True}

            coordinates = Coordinates.parse(item)
            if coordinates is None:
                return {"coordinates": item, "success": False, "error": "invalid coordinates"}
            place_name = self.reverse_geocode(coordinates)
            if place_name is None:
                return {"coordinates": coordinates, "success": False}
            return {"coordinates": coordinates, "address": place_name, "success": True}
        except Exception as exc:
            self.logger.warning(
                f"geocoding failed for {item!r}: {exc}",
                extra={"stage": "geocode", "source": "mapbox", "event": "GEOCODE_ITEM_FAIL", "status": "error",
                       "error_code": getattr(exc, "error_code", "UNEXPECTED_ERROR")},
            )
            return {"address": item, "success": False, "error": str(exc)}

    def geocode_batch(self, addresses: Sequence[Any], geocode_type: str = FORWARD) -> dict[str, Any]:
        if geocode_type not in (FORWARD, REVERSE):
            raise ValueError(f"Unknown geocode type: {geocode_type}")
        if len(addresses) > self.max_batch_addresses:
            raise ValueError(f"Maximum {self.max_batch_addresses} addresses per request")

        results: list[dict[str, Any]] = []
        batches = list(_chunked(list(addresses), self.batch_size))
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for index, batch in enumerate(batches):
                results.extend(pool.map(lambda item: self._geocode_one(item, geocode_type), batch))
                if index + 1 < len(batches) and self.batch_delay > 0:
                    self.sleep(self.batch_delay)

        return {
            "results": results,
            "count": len(results),
            "successful": sum(1 for result in results if result["success"]),
        }

    def close(self) -> None:
        self.client.close()
