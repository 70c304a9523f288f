"""CLI entrypoint for the store locator search pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from store_locator.common.config_loader import ConfigBundle, load_config
from store_locator.common.constants import (
    EXIT_HARD_FAIL,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    FILTER_ALL,
    STATE_ERROR,
)
from store_locator.common.errors import LocatorError
from store_locator.common.http import HttpClient
from store_locator.common.ids import generate_session_id
from store_locator.common.logging import build_logger, log_event
from store_locator.common.models import Coordinates, SearchFilters, SearchOutcome
from store_locator.pipeline.distance import format_distance
from store_locator.pipeline.geocoder import GeocodeCache, GeocodeResolver
from store_locator.pipeline.matching import MatchEngine
from store_locator.pipeline.repository import LocationRepository
from store_locator.pipeline.search import SearchOrchestrator
from store_locator.sources.airtable import AirtableSource
from store_locator.sources.mapbox import MapboxClient

COMMANDS = ("fetch", "search", "show-all", "geocode", "reverse")


@dataclass
class Pipeline:
    orchestrator: SearchOrchestrator
    repository: LocationRepository
    resolver: GeocodeResolver
    http_client: HttpClient
    cache_path: Path | None

    def close(self) -> None:
        if self.cache_path is not None:
            self.resolver.cache.save(self.cache_path)
        self.http_client.close()


def build_pipeline(bundle: ConfigBundle, logger: logging.Logger, http_client: HttpClient | None = None) -> Pipeline:
    client = http_client or HttpClient()
    source = AirtableSource(bundle.airtable, bundle.fields, http_client=client)
    mapbox = MapboxClient(bundle.mapbox, http_client=client, logger=logger)

    cache_path = bundle.cache.get("geocode_cache_path")
    cache_path = Path(cache_path) if cache_path else None
    if cache_path is not None:
        cache = GeocodeCache.load(
            cache_path,
            max_age_seconds=bundle.cache.get("geocode_cache_max_age_seconds"),
            logger=logger,
        )
    else:
        cache = GeocodeCache()

    repository = LocationRepository(
        source,
        ttl_seconds=float(bundle.cache["locations_ttl_seconds"]),
        page_delay=float(bundle.airtable.get("page_delay_seconds", 0.2)),
        logger=logger,
    )
    resolver = GeocodeResolver(
        mapbox,
        cache=cache,
        logger=logger,
        max_batch_addresses=mapbox.max_batch_addresses,
    )
    engine = MatchEngine(
        fuzzy_threshold=float(bundle.search.get("fuzzy_threshold", 0.5)),
        fuzzy_limit=int(bundle.search.get("fuzzy_limit", 200)),
    )
    orchestrator = SearchOrchestrator(repository, resolver, engine=engine, logger=logger)
    return Pipeline(
        orchestrator=orchestrator,
        repository=repository,
        resolver=resolver,
        http_client=client,
        cache_path=cache_path,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("query", nargs="*", default=[])
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--radius", default=None)
    parser.add_argument("--premium-only", action="store_true")
    parser.add_argument("--country", default=FILTER_ALL)
    parser.add_argument("--region", default=FILTER_ALL)
    parser.add_argument("--force-refresh", action="store_true")
    parser.add_argument("--config", default="./config/locator.yml")
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--session-id", default=None)
    parser.add_argument("--log-dir", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def _print_json(payload) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")


def _outcome_payload(outcome: SearchOutcome) -> dict:
    payload = outcome.to_dict()
    for item in payload["results"]:
        miles = item.get("distance_miles")
        item["distance_label"] = format_distance(miles) if miles is not None else None
    return payload


def _outcome_exit_code(outcome: SearchOutcome) -> int:
    if outcome.state == STATE_ERROR:
        return EXIT_HARD_FAIL
    if not outcome.results or outcome.error_kind:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def _query_from_args(args: argparse.Namespace):
    if args.lon is not None or args.lat is not None:
        coords = Coordinates.parse((args.lon, args.lat))
        if coords is None:
            raise LocatorError("Both --lon and --lat must be valid coordinates")
        return coords
    return " ".join(args.query)


def execute_command(args: argparse.Namespace, pipeline: Pipeline, bundle: ConfigBundle) -> int:
    filters = SearchFilters(premium_only=args.premium_only, country=args.country, region=args.region)
    orchestrator = pipeline.orchestrator

    if args.command == "fetch":
        records = pipeline.repository.fetch_all(force_refresh=args.force_refresh)
        _print_json(
            {
                "records": [record.to_dict() for record in records],
                "count": len(records),
                "dropped": pipeline.repository.dropped_count,
            }
        )
        return EXIT_SUCCESS if records else EXIT_PARTIAL

    if args.command == "search":
        radius = args.radius if args.radius is not None else bundle.search.get("default_radius", 50)
        outcome = orchestrator.search(_query_from_args(args), radius, filters, force_refresh=args.force_refresh)
        _print_json(_outcome_payload(outcome))
        return _outcome_exit_code(outcome)

    if args.command == "show-all":
        outcome = orchestrator.show_all(filters, force_refresh=args.force_refresh)
        _print_json(_outcome_payload(outcome))
        return _outcome_exit_code(outcome)

    if args.command == "geocode":
        addresses = args.query
        resolved = pipeline.resolver.resolve_forward_batch(addresses)
        results = [
            {"address": address, "success": coords is not None, "coordinates": coords.as_pair() if coords else None}
            for address, coords in zip(addresses, resolved)
        ]
        successful = sum(1 for item in results if item["success"])
        _print_json({"results": results, "count": len(results), "successful": successful})
        return EXIT_SUCCESS if successful == len(results) else EXIT_PARTIAL

    if args.command == "reverse":
        coords = _query_from_args(args)
        if not isinstance(coords, Coordinates):
            raise LocatorError("reverse requires --lon and --lat")
        _print_json({"coordinates": coords.as_pair(), "address": orchestrator.reverse_geocode(coords)})
        return EXIT_SUCCESS

    raise ValueError(f"Unknown command: {args.command}")


def run_command(args: argparse.Namespace, http_client: HttpClient | None = None) -> int:
    session_id = args.session_id or generate_session_id()
    log_dir = Path(args.log_dir) if args.log_dir else None
    logger = build_logger(session_id, log_dir=log_dir, level=args.log_level)
    overlay = Path(args.overlay_config) if args.overlay_config else None

    log_event(logger, "command start", session_id=session_id, stage=args.command, event="COMMAND_START", status="ok")
    try:
        bundle = load_config(Path(args.config), overlay_path=overlay)
        pipeline = build_pipeline(bundle, logger, http_client=http_client)
    except LocatorError as exc:
        log_event(
            logger,
            f"setup failed: {exc}",
            session_id=session_id,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL

    try:
        exit_code = execute_command(args, pipeline, bundle)
    except LocatorError as exc:
        log_event(
            logger,
            f"command failed: {exc}",
            session_id=session_id,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        exit_code = EXIT_HARD_FAIL
    finally:
        pipeline.close()

    log_event(logger, "command end", session_id=session_id, stage=args.command, event="COMMAND_END", status="ok")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except LocatorError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
