"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from store_locator.common.errors import ConfigError

FIELD_CANDIDATE_KEYS = (
    "name_candidates",
    "address_candidates",
    "geo_address_candidates",
    "lat_candidates",
    "lon_candidates",
    "premium_candidates",
    "country_candidates",
    "region_candidates",
    "instructor_candidates",
    "phone_candidates",
    "email_candidates",
    "website_candidates",
)


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_number(value: object, ctx: str, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be {'non-negative' if allow_zero else 'positive'}")


def validate_airtable_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"base_id", "table", "view", "api_key_env"}, "airtable")
    for key in ("page_delay_seconds",):
        if key in cfg:
            _assert_positive_number(cfg[key], f"airtable.{key}", allow_zero=True)
    if "timeout_seconds" in cfg:
        _assert_positive_number(cfg["timeout_seconds"], "airtable.timeout_seconds")
    return cfg


def validate_mapbox_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"token_env"}, "mapbox")
    if "batch_size" in cfg:
        _assert_positive_number(cfg["batch_size"], "mapbox.batch_size")
    if "batch_delay_seconds" in cfg:
        _assert_positive_number(cfg["batch_delay_seconds"], "mapbox.batch_delay_seconds", allow_zero=True)
    if "max_batch_addresses" in cfg:
        _assert_positive_number(cfg["max_batch_addresses"], "mapbox.max_batch_addresses")
    return cfg


def validate_fields_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    required = {"name_candidates", "address_candidates", "lat_candidates", "lon_candidates"}
    _assert_required_keys(cfg, required, "fields")
    _assert_no_unknown_keys(cfg, {*FIELD_CANDIDATE_KEYS, "id_candidates"}, "fields", allow_unknown)
    for key, value in cfg.items():
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigError(f"fields.{key} must be a list of field names")
    return cfg


def validate_cache_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"locations_ttl_seconds"}, "cache")
    _assert_positive_number(cfg["locations_ttl_seconds"], "cache.locations_ttl_seconds", allow_zero=True)
    if "geocode_cache_max_age_seconds" in cfg:
        _assert_positive_number(cfg["geocode_cache_max_age_seconds"], "cache.geocode_cache_max_age_seconds")
    return cfg


def validate_search_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, set(), "search")
    threshold = cfg.get("fuzzy_threshold", 0.5)
    _assert_positive_number(threshold, "search.fuzzy_threshold")
    if threshold > 1:
        raise ConfigError("search.fuzzy_threshold must be at most 1")
    if "fuzzy_limit" in cfg:
        _assert_positive_number(cfg["fuzzy_limit"], "search.fuzzy_limit")
    return cfg


def validate_root_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"airtable", "mapbox", "fields", "cache"}
    _assert_required_keys(cfg, top_required, "locator config")
    _assert_no_unknown_keys(cfg, {*top_required, "search"}, "locator config", allow_unknown)
    return cfg
