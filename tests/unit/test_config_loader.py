from pathlib import Path

import pytest

from store_locator.common.config_loader import load_config, resolve_secret
from store_locator.common.errors import ConfigError

MINIMAL_CONFIG = """airtable:
  base_id: appBASE
  table: Locations
  view: US
  api_key_env: AIRTABLE_API_KEY
mapbox:
  token_env: MAPBOX_TOKEN
fields:
  name_candidates: [Name]
  address_candidates: [Address]
  lat_candidates: [Latitude]
  lon_candidates: [Longitude]
cache:
  locations_ttl_seconds: 300
"""


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_from_repo_config_dir():
    bundle = load_config(Path("config/locator.yml"), env={})
    assert bundle.airtable["table"] == "Locations"
    assert bundle.mapbox["batch_size"] == 5
    assert bundle.cache["locations_ttl_seconds"] == 300
    assert bundle.search["fuzzy_limit"] == 200
    assert "GB Name" in bundle.fields["name_candidates"]


def test_load_config_minimal_defaults_search_section(tmp_path: Path):
    bundle = load_config(_write(tmp_path / "locator.yml", MINIMAL_CONFIG), env={})
    assert bundle.search == {}
    assert bundle.airtable["base_id"] == "appBASE"


def test_load_config_applies_overlay_values(tmp_path: Path):
    base = _write(tmp_path / "locator.yml", MINIMAL_CONFIG)
    overlay = _write(
        tmp_path / "overlay.yml",
        """airtable:
  view: Europe
cache:
  locations_ttl_seconds: 60
""",
    )

    bundle = load_config(base, overlay_path=overlay, env={})

    assert bundle.airtable["view"] == "Europe"
    assert bundle.airtable["table"] == "Locations"
    assert bundle.cache["locations_ttl_seconds"] == 60


def test_load_config_environment_overrides_airtable_ids(tmp_path: Path):
    base = _write(tmp_path / "locator.yml", MINIMAL_CONFIG)
    bundle = load_config(base, env={"AIRTABLE_BASE_ID": "appLIVE", "AIRTABLE_VIEW_ID": "viwLIVE"})
    assert bundle.airtable["base_id"] == "appLIVE"
    assert bundle.airtable["view"] == "viwLIVE"
    assert bundle.airtable["table"] == "Locations"


def test_load_config_missing_section_raises(tmp_path: Path):
    text = MINIMAL_CONFIG.replace("cache:\n  locations_ttl_seconds: 300\n", "")
    with pytest.raises(ConfigError, match="cache"):
        load_config(_write(tmp_path / "locator.yml", text), env={})


def test_load_config_rejects_unknown_field_keys(tmp_path: Path):
    text = MINIMAL_CONFIG.replace("  lon_candidates: [Longitude]\n", "  lon_candidates: [Longitude]\n  colour_candidates: [Colour]\n")
    with pytest.raises(ConfigError, match="colour_candidates"):
        load_config(_write(tmp_path / "locator.yml", text), env={})


def test_load_config_rejects_bad_threshold(tmp_path: Path):
    text = MINIMAL_CONFIG + "search:\n  fuzzy_threshold: 1.5\n"
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path / "locator.yml", text), env={})


def test_load_config_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yml", env={})


def test_resolve_secret_reads_named_variable():
    assert resolve_secret({"token_env": "MAPBOX_TOKEN"}, "token_env", env={"MAPBOX_TOKEN": " pk.abc "}) == "pk.abc"
    with pytest.raises(ConfigError, match="MAPBOX_TOKEN"):
        resolve_secret({"token_env": "MAPBOX_TOKEN"}, "token_env", env={})
