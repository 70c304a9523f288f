"""Location repository: paginated fetch, validation, and a TTL snapshot."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from store_locator.common.constants import LOCATIONS_TTL_SECONDS
from store_locator.common.errors import FetchError
from store_locator.common.http import HttpRequestError
from store_locator.common.logging import get_logger, log_event
from store_locator.common.models import LocationRecord


class LocationSource(Protocol):
    def fetch_page(self, offset: str | None = None) -> tuple[list[dict], str | None]: ...

    def normalise(self, raw: Mapping[str, Any]) -> LocationRecord | None: ...


@dataclass(frozen=True)
class LocationSnapshot:
    records: tuple[LocationRecord, ...]
    fetched_at: float
    dropped: int


class LocationRepository:
    """Serves the full location set, refetching once the snapshot is stale.

    The snapshot is an immutable object swapped in a single assignment, so a
    reader sees either the previous set or the new one, never a mix.
    """

    def __init__(
        self,
        source: LocationSource,
        ttl_seconds: float = LOCATIONS_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        page_delay: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.page_delay = page_delay
        self.sleep = sleep
        self.logger = get_logger(logger)
        self._snapshot: LocationSnapshot | None = None
        self._fetch_lock = threading.Lock()

    @property
    def snapshot(self) -> LocationSnapshot | None:
        return self._snapshot

    @property
    def dropped_count(self) -> int:
        return self._snapshot.dropped if self._snapshot else 0

    def is_fresh(self, snapshot: LocationSnapshot | None = None) -> bool:
        snapshot = snapshot if snapshot is not None else self._snapshot
        if snapshot is None:
            return False
        return self.clock() - snapshot.fetched_at < self.ttl_seconds

    def invalidate(self) -> None:
        self._snapshot = None

    def fetch_all(self, force_refresh: bool = False) -> list[LocationRecord]:
        current = self._snapshot
        if not force_refresh and self.is_fresh(current):
            return list(current.records)

        with self._fetch_lock:
            # Another caller may have refreshed while we waited.
            current = self._snapshot
            if not force_refresh and self.is_fresh(current):
                return list(current.records)
            snapshot = self._fetch_snapshot()
            self._snapshot = snapshot
        return list(snapshot.records)

    def _fetch_snapshot(self) -> LocationSnapshot:
        started = time.monotonic()
        records: list[LocationRecord] = []
        dropped = 0
        pages = 0
        offset: str | None = None

        while True:
            try:
                raw_records, offset = self.source.fetch_page(offset)
            except HttpRequestError as exc:
                log_event(
                    self.logger,
                    f"location fetch failed on page {pages + 1}",
                    stage="fetch",
                    source="airtable",
                    event="FETCH_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                raise FetchError(f"Unable to fetch locations: {exc}", status_code=exc.status_code) from exc
            pages += 1

            for raw in raw_records:
                record = self.source.normalise(raw)
                if record is None:
                    dropped += 1
                    self.logger.debug(
                        f"dropping unusable record {raw.get('id')!r}",
                        extra={"stage": "fetch", "event": "RECORD_DROPPED"},
                    )
                    continue
                records.append(record)

            if not offset:
                break
            if self.page_delay > 0:
                self.sleep(self.page_delay)

        log_event(
            self.logger,
            f"fetched {len(records)} locations in {pages} pages",
            stage="fetch",
            source="airtable",
            event="FETCH_COMPLETE",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=len(records) + dropped,
            rows_out=len(records),
        )
        return LocationSnapshot(records=tuple(records), fetched_at=self.clock(), dropped=dropped)
