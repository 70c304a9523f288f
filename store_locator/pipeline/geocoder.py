"""Address to coordinate resolution with an injectable cache."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Protocol, Sequence

from store_locator.common.constants import GEOCODE_MAX_BATCH_ADDRESSES
from store_locator.common.errors import GeocodeError
from store_locator.common.fs import read_json, write_json
from store_locator.common.http import HttpRequestError
from store_locator.common.logging import get_logger, log_event
from store_locator.common.models import Coordinates
from store_locator.common.text import normalize_address_key
from store_locator.common.time_utils import utc_epoch_seconds


class GeocodeEndpoint(Protocol):
    def forward_geocode(self, address: str) -> Coordinates | None: ...

    def reverse_geocode(self, coordinates: Coordinates) -> str | None: ...

    def geocode_batch(self, addresses: Sequence, geocode_type: str = "forward") -> dict: ...


class GeocodeCache:
    """Normalised address -> coordinates, replaced wholesale on every write."""

    def __init__(self, entries: dict[str, Coordinates] | None = None) -> None:
        self._entries: dict[str, Coordinates] = dict(entries or {})
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: str) -> bool:
        return normalize_address_key(address) in self._entries

    def get(self, address: str) -> Coordinates | None:
        return self._entries.get(normalize_address_key(address))

    def put(self, address: str, coordinates: Coordinates) -> None:
        self.put_many({address: coordinates})

    def put_many(self, resolved: dict[str, Coordinates]) -> None:
        with self._lock:
            updated = dict(self._entries)
            for address, coordinates in resolved.items():
                key = normalize_address_key(address)
                if key:
                    updated[key] = coordinates
            self._entries = updated

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def save(self, path: Path) -> None:
        entries = self._entries
        write_json(
            path,
            {
                "saved_at": utc_epoch_seconds(),
                "entries": {key: coords.as_pair() for key, coords in entries.items()},
            },
        )

    @classmethod
    def load(
        cls,
        path: Path,
        *,
        max_age_seconds: float | None = None,
        logger: logging.Logger | None = None,
    ) -> "GeocodeCache":
        logger = get_logger(logger)
        if not path.exists():
            return cls()
        try:
            payload = read_json(path)
            saved_at = float(payload.get("saved_at", 0))
            raw_entries = payload.get("entries") or {}
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning(f"ignoring unreadable geocode cache {path}: {exc}", extra={"event": "GEOCODE_CACHE_INVALID"})
            return cls()

        if max_age_seconds is not None and utc_epoch_seconds() - saved_at > max_age_seconds:
            log_event(logger, f"geocode cache {path} expired", event="GEOCODE_CACHE_EXPIRED", status="skipped")
            return cls()

        entries = {}
        for key, pair in raw_entries.items():
            coords = Coordinates.parse(pair)
            if coords is not None:
                entries[key] = coords
        return cls(entries)


class GeocodeResolver:
    def __init__(
        self,
        client: GeocodeEndpoint,
        cache: GeocodeCache | None = None,
        logger: logging.Logger | None = None,
        max_batch_addresses: int = GEOCODE_MAX_BATCH_ADDRESSES,
    ) -> None:
        self.client = client
        self.cache = cache if cache is not None else GeocodeCache()
        self.logger = get_logger(logger)
        self.max_batch_addresses = max_batch_addresses

    def resolve_forward(self, address: str) -> Coordinates | None:
        """Resolve one address, serving repeats from the cache.

        Returns None when the geocoder has no match. Raises GeocodeError when
        the geocoder could not be reached within the retry budget.
        """
        key = normalize_address_key(address)
        if not key:
            return None

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            coordinates = self.client.forward_geocode(key)
        except HttpRequestError as exc:
            raise GeocodeError(f"Geocoding failed for {key!r}: {exc}") from exc

        if coordinates is not None:
            self.cache.put(key, coordinates)
        return coordinates

    def resolve_forward_batch(self, addresses: Sequence[str]) -> list[Coordinates | None]:
        keys = [normalize_address_key(address) for address in addresses]
        misses = list(dict.fromkeys(key for key in keys if key and key not in self.cache))

        started = time.monotonic()
        resolved: dict[str, Coordinates] = {}
        attempted = 0
        errored = 0
        for start in range(0, len(misses), self.max_batch_addresses):
            chunk = misses[start : start + self.max_batch_addresses]
            response = self.client.geocode_batch(chunk, "forward")
            for key, result in zip(chunk, response.get("results") or []):
                attempted += 1
                coordinates = Coordinates.parse(result.get("coordinates")) if result.get("success") else None
                if coordinates is not None:
                    resolved[key] = coordinates
                elif result.get("error"):
                    errored += 1

        if resolved:
            self.cache.put_many(resolved)

        log_event(
            self.logger,
            "batch geocode complete",
            stage="geocode",
            source="mapbox",
            event="GEOCODE_BATCH",
            status="ok" if errored < attempted or attempted == 0 else "error",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=len(keys),
            rows_out=len(resolved),
        )

        results = [self.cache.get(key) if key else None for key in keys]
        # Cache hits count as resolved; only a batch with nothing usable fails.
        if attempted and errored == attempted and not any(results):
            raise GeocodeError(f"All {attempted} geocode requests failed")

        return results

    def resolve_reverse(self, coordinates: Coordinates) -> str:
        fallback = f"{coordinates.latitude}, {coordinates.longitude}"
        try:
            place_name = self.client.reverse_geocode(coordinates)
        except Exception as exc:
            self.logger.warning(
                f"reverse geocoding failed: {exc}",
                extra={"stage": "geocode", "source": "mapbox", "event": "REVERSE_GEOCODE_FAIL", "status": "error"},
            )
            return fallback
        return place_name or fallback
