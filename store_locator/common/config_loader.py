"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from store_locator.common.errors import ConfigError
from store_locator.common.fs import read_yaml
from store_locator.common.schema import (
    validate_airtable_config,
    validate_cache_config,
    validate_fields_config,
    validate_mapbox_config,
    validate_root_config,
    validate_search_config,
)

# Deployment variables that override the YAML values when present.
AIRTABLE_ENV_OVERRIDES = {
    "AIRTABLE_BASE_ID": "base_id",
    "AIRTABLE_TABLE_ID": "table",
    "AIRTABLE_VIEW_ID": "view",
}


@dataclass(frozen=True)
class ConfigBundle:
    airtable: dict
    mapbox: dict
    fields: dict
    cache: dict
    search: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def load_config(
    config_path: Path,
    *,
    overlay_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    allow_unknown: bool = False,
) -> ConfigBundle:
    environ = os.environ if env is None else env
    cfg = validate_root_config(_load_yaml_with_overlay(config_path, overlay_path), allow_unknown=allow_unknown)

    airtable = dict(cfg["airtable"])
    for env_name, key in AIRTABLE_ENV_OVERRIDES.items():
        if environ.get(env_name):
            airtable[key] = environ[env_name]

    return ConfigBundle(
        airtable=validate_airtable_config(airtable),
        mapbox=validate_mapbox_config(dict(cfg["mapbox"])),
        fields=validate_fields_config(dict(cfg["fields"]), allow_unknown=allow_unknown),
        cache=validate_cache_config(dict(cfg["cache"])),
        search=validate_search_config(dict(cfg.get("search") or {})),
    )


def resolve_secret(section: dict, key: str, *, env: Mapping[str, str] | None = None) -> str:
    """Read the secret named by ``section[key]`` from the environment."""
    environ = os.environ if env is None else env
    env_name = section.get(key)
    if not env_name:
        raise ConfigError(f"Missing config key: {key}")
    value = environ.get(env_name, "").strip()
    if not value:
        raise ConfigError(f"Environment variable {env_name} is not set")
    return value
