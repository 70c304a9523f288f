"""Airtable location source: page fetches and record normalisation."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

from store_locator.common.config_loader import resolve_secret
from store_locator.common.constants import AIRTABLE_API_URL
from store_locator.common.http import HttpClient, TimeoutConfig
from store_locator.common.models import Contact, Coordinates, LocationRecord

_TRUE_STRINGS = {"true", "yes", "y", "1", "premium", "checked"}


def _lookup_first(fields: Mapping[str, Any], candidates: list[str]) -> object | None:
    for key in candidates:
        if key in fields and fields[key] not in (None, "", []):
            return fields[key]
    return None


def _unwrap(value: object) -> object:
    # Lookup and rollup fields arrive as single-element lists.
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _safe_float(value: object) -> float | None:
    value = _unwrap(value)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_str(value: object) -> str | None:
    value = _unwrap(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_bool(value: object) -> bool:
    value = _unwrap(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _parse_regions(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, list):
        items = value
    else:
        items = str(value).split(",")
    regions = [str(item).strip() for item in items]
    return tuple(dict.fromkeys(region for region in regions if region))


def normalise_record(raw: Mapping[str, Any], fields: Mapping[str, list[str]]) -> LocationRecord | None:
    """Map one raw Airtable record onto ``LocationRecord``.

    Returns None when the record cannot be identified (no name and no
    address) or can never be placed on the map (no valid coordinates and
    nothing to geocode).
    """
    values = raw.get("fields") or {}

    def lookup(key: str) -> object | None:
        return _lookup_first(values, fields.get(key) or [])

    address = _safe_str(lookup("address_candidates"))
    geo_address = _safe_str(lookup("geo_address_candidates"))
    name = _safe_str(lookup("name_candidates")) or address

    lat = _safe_float(lookup("lat_candidates"))
    lon = _safe_float(lookup("lon_candidates"))
    coordinates = Coordinates.parse((lon, lat)) if lat is not None and lon is not None else None

    if not name:
        return None
    if coordinates is None and not (geo_address or address):
        return None

    record_id = _safe_str(lookup("id_candidates")) or _safe_str(raw.get("id"))
    if record_id is None:
        return None

    if geo_address == address:
        geo_address = None

    return LocationRecord(
        id=record_id,
        name=name,
        address=address,
        geo_address=geo_address,
        coordinates=coordinates,
        is_premium=_parse_bool(lookup("premium_candidates")),
        country=_safe_str(lookup("country_candidates")),
        regions=_parse_regions(lookup("region_candidates")),
        contact=Contact(
            instructor=_safe_str(lookup("instructor_candidates")),
            phone=_safe_str(lookup("phone_candidates")),
            email=_safe_str(lookup("email_candidates")),
            website=_safe_str(lookup("website_candidates")),
        ),
    )


class AirtableSource:
    """Reads the locations table one page at a time."""

    def __init__(
        self,
        config: dict,
        fields: dict,
        http_client: HttpClient | None = None,
        api_key: str | None = None,
    ) -> None:
        self.config = config
        self.fields = fields
        self.api_key = api_key or resolve_secret(config, "api_key_env")
        self.client = http_client or HttpClient()
        timeout = float(config.get("timeout_seconds", 8))
        self.timeout = TimeoutConfig(connect=timeout, read=timeout)

    @property
    def table_url(self) -> str:
        base_id = quote(str(self.config["base_id"]), safe="")
        table = quote(str(self.config["table"]), safe="")
        return f"{AIRTABLE_API_URL}/{base_id}/{table}"

    def _params(self, offset: str | None) -> list[tuple[str, str]]:
        params = [("view", str(self.config["view"]))]
        if self.config.get("return_fields_by_field_id"):
            params.append(("returnFieldsByFieldId", "true"))
            for key in sorted(self.fields):
                for field_id in self.fields[key]:
                    params.append(("fields[]", field_id))
        if offset:
            params.append(("offset", offset))
        return params

    def fetch_page(self, offset: str | None = None) -> tuple[list[dict], str | None]:
        payload = self.client.get_json(
            self.table_url,
            source_type="airtable",
            params=self._params(offset),
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        records = payload.get("records") or []
        next_offset = payload.get("offset") or None
        return list(records), next_offset

    def normalise(self, raw: Mapping[str, Any]) -> LocationRecord | None:
        return normalise_record(raw, self.fields)

    def close(self) -> None:
        self.client.close()
