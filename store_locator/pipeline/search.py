"""Search orchestration: fetch, geocode, match, and report a status."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Any

from store_locator.common.constants import (
    ERROR_INVALID_QUERY,
    ERROR_NO_LOCATION_FOUND,
    MODE_ALL,
    RADIUS_ANY,
    STATE_DONE,
    STATE_ERROR,
    STATE_FETCHING,
    STATE_GEOCODING,
    STATE_IDLE,
    STATE_MATCHING,
    STATUS_ERROR,
    STATUS_NO_RESULTS,
)
from store_locator.common.errors import FetchError, GeocodeError, LocatorError
from store_locator.common.logging import get_logger, log_event
from store_locator.common.models import (
    Coordinates,
    LocationRecord,
    SearchFilters,
    SearchOutcome,
    SearchResult,
    parse_radius,
)
from store_locator.pipeline.geocoder import GeocodeResolver
from store_locator.pipeline.matching import MatchEngine, apply_filters
from store_locator.pipeline.repository import LocationRepository


def found_status(count: int) -> str:
    if count == 0:
        return STATUS_NO_RESULTS
    noun = "location" if count == 1 else "locations"
    return f"Found {count} {noun}"


@dataclass
class _Run:
    generation: int
    started: float
    state: str = STATE_IDLE


class SearchOrchestrator:
    """Facade the UI calls for every search.

    Each call takes a new generation number. A call only commits its
    outcome to ``latest`` while its generation is still the newest, so a slow
    search that finishes after a newer one is returned flagged as
    ``superseded`` and leaves the shared state alone.
    """

    def __init__(
        self,
        repository: LocationRepository,
        resolver: GeocodeResolver,
        engine: MatchEngine | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.engine = engine or MatchEngine()
        self.logger = get_logger(logger)
        self._generation = 0
        self._lock = threading.Lock()
        self._latest: SearchOutcome | None = None
        self.state = STATE_IDLE

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def latest(self) -> SearchOutcome | None:
        return self._latest

    def _begin(self) -> _Run:
        with self._lock:
            self._generation += 1
            return _Run(generation=self._generation, started=time.monotonic())

    def _is_current(self, run: _Run) -> bool:
        return run.generation == self._generation

    def _enter(self, run: _Run, state: str) -> bool:
        run.state = state
        with self._lock:
            if not self._is_current(run):
                return False
            self.state = state
        return True

    def _commit(self, run: _Run, outcome: SearchOutcome) -> SearchOutcome:
        with self._lock:
            if not self._is_current(run):
                stale = replace(outcome, superseded=True)
                log_event(
                    self.logger,
                    "discarding superseded search",
                    stage="search",
                    event="SEARCH_SUPERSEDED",
                    status="skipped",
                    generation=run.generation,
                )
                return stale
            self._latest = outcome
            self.state = outcome.state
        log_event(
            self.logger,
            outcome.status or "empty query ignored",
            stage="search",
            event="SEARCH_END",
            status="error" if outcome.state == STATE_ERROR else "ok",
            duration_ms=int((time.monotonic() - run.started) * 1000),
            rows_in=outcome.records_total,
            rows_out=len(outcome.results),
            error_code=outcome.error_kind,
            generation=run.generation,
        )
        return outcome

    def _superseded(self, run: _Run) -> SearchOutcome:
        log_event(
            self.logger,
            f"search superseded during {run.state}",
            stage="search",
            event="SEARCH_SUPERSEDED",
            status="skipped",
            generation=run.generation,
        )
        return SearchOutcome(results=[], status="", state=run.state, generation=run.generation, superseded=True)

    def _failed(self, run: _Run, exc: LocatorError, **counts: int) -> SearchOutcome:
        self.logger.error(
            f"search failed during {run.state}: {exc}",
            extra={"stage": run.state, "event": "SEARCH_FAIL", "status": "error",
                   "error_code": exc.error_code, "generation": run.generation},
        )
        outcome = SearchOutcome(
            results=[],
            status=STATUS_ERROR,
            state=STATE_ERROR,
            generation=run.generation,
            error_kind=exc.error_code,
            **counts,
        )
        return self._commit(run, outcome)

    def _resolve_records(
        self, run: _Run, records: list[LocationRecord]
    ) -> tuple[list[LocationRecord], int, str | None]:
        """Fill in missing coordinates; unresolved records are dropped."""
        pending = [record for record in records if record.coordinates is None]
        if not pending:
            return records, 0, None

        try:
            resolved = self.resolver.resolve_forward_batch([record.geocode_query or "" for record in pending])
        except GeocodeError as exc:
            self.logger.warning(
                f"batch geocoding unavailable, continuing with {len(records) - len(pending)} located records",
                extra={"stage": STATE_GEOCODING, "event": "GEOCODE_DEGRADED", "status": "partial",
                       "error_code": exc.error_code, "generation": run.generation},
            )
            located = [record for record in records if record.coordinates is not None]
            return located, len(pending), exc.error_code

        resolved_iter = iter(resolved)
        out: list[LocationRecord] = []
        unresolved = 0
        for record in records:
            if record.coordinates is not None:
                out.append(record)
                continue
            coords = next(resolved_iter, None)
            if coords is None:
                unresolved += 1
                continue
            out.append(record.with_coordinates(coords))
        return out, unresolved, None

    def _prepare(
        self, run: _Run, filters: SearchFilters, force_refresh: bool
    ) -> tuple[list[LocationRecord], int, int, str | None] | SearchOutcome:
        if not self._enter(run, STATE_FETCHING):
            return self._superseded(run)
        try:
            records = self.repository.fetch_all(force_refresh=force_refresh)
        except FetchError as exc:
            return self._failed(run, exc)

        filtered = apply_filters(records, filters)

        if not self._enter(run, STATE_GEOCODING):
            return self._superseded(run)
        located, unresolved, degraded = self._resolve_records(run, filtered)
        return located, len(filtered), unresolved, degraded

    def search(
        self,
        query: Any,
        radius_miles: Any = RADIUS_ANY,
        filters: SearchFilters | None = None,
        force_refresh: bool = False,
    ) -> SearchOutcome:
        run = self._begin()
        filters = filters or SearchFilters()
        log_event(self.logger, "search start", stage="search", event="SEARCH_START", status="ok", generation=run.generation)

        try:
            radius = parse_radius(radius_miles)
        except ValueError as exc:
            self.logger.warning(str(exc), extra={"stage": "search", "event": "INVALID_RADIUS", "generation": run.generation})
            outcome = SearchOutcome(
                results=[], status=STATUS_ERROR, state=STATE_ERROR, generation=run.generation, error_kind=ERROR_INVALID_QUERY
            )
            return self._commit(run, outcome)

        if isinstance(query, str) and not query.strip():
            outcome = SearchOutcome(
                results=[], status="", state=STATE_DONE, generation=run.generation, error_kind=ERROR_INVALID_QUERY
            )
            return self._commit(run, outcome)

        prepared = self._prepare(run, filters, force_refresh)
        if isinstance(prepared, SearchOutcome):
            return prepared
        located, total, unresolved, degraded = prepared
        counts = {"records_total": total, "records_unresolved": unresolved}

        if not self._enter(run, STATE_MATCHING):
            return self._superseded(run)
        try:
            matched = self.engine.match(query, radius, filters, located, geocode=self.resolver.resolve_forward)
        except GeocodeError as exc:
            return self._failed(run, exc, **counts)

        if not self._is_current(run):
            return self._superseded(run)

        error_kind = degraded
        if not matched.found:
            error_kind = error_kind or ERROR_NO_LOCATION_FOUND

        outcome = SearchOutcome(
            results=matched.results,
            status=found_status(len(matched.results)),
            state=STATE_DONE,
            generation=run.generation,
            error_kind=error_kind,
            mode=matched.mode,
            center=matched.center,
            **counts,
        )
        return self._commit(run, outcome)

    def show_all(self, filters: SearchFilters | None = None, force_refresh: bool = False) -> SearchOutcome:
        run = self._begin()
        filters = filters or SearchFilters()

        prepared = self._prepare(run, filters, force_refresh)
        if isinstance(prepared, SearchOutcome):
            return prepared
        located, total, unresolved, degraded = prepared

        if not self._enter(run, STATE_MATCHING):
            return self._superseded(run)
        results = [SearchResult(record=record, rank_key=(index,)) for index, record in enumerate(located)]
        outcome = SearchOutcome(
            results=results,
            status=found_status(len(results)),
            state=STATE_DONE,
            generation=run.generation,
            error_kind=degraded,
            mode=MODE_ALL,
            records_total=total,
            records_unresolved=unresolved,
        )
        return self._commit(run, outcome)

    def reverse_geocode(self, coordinates: Coordinates) -> str:
        return self.resolver.resolve_reverse(coordinates)
