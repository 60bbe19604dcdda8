"""Configuration loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .models import (
    GeocodingSettings,
    MapSettings,
    MarketSettings,
    PaginationSettings,
)


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load config from YAML file."""
    path = Path(config_path) if config_path else Path(__file__).parent.parent.parent / "config.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a top-level mapping.")
    return data


def get_pagination_settings(config: dict[str, Any]) -> PaginationSettings:
    """Extract page size bounds from config."""
    pg = config.get("pagination", {})
    max_page_size = max(0, int(pg.get("max_page_size", 100)))
    default_page_size = int(pg.get("default_page_size", 20))
    return PaginationSettings(
        default_page_size=min(max(0, default_page_size), max_page_size),
        max_page_size=max_page_size,
        max_offset=max(0, int(pg.get("max_offset", 2**31 - 1))),
    )


def get_map_settings(config: dict[str, Any]) -> MapSettings:
    """Extract map fallback center and zoom bounds from config."""
    mp = config.get("map", {})
    center = mp.get("default_center", {})
    if not isinstance(center, dict):
        center = {}
    return MapSettings(
        default_latitude=float(center.get("latitude", -24.6282)),
        default_longitude=float(center.get("longitude", 25.9231)),
        default_zoom=float(mp.get("default_zoom", 11)),
        min_zoom=float(mp.get("min_zoom", 8)),
        max_zoom=float(mp.get("max_zoom", 12)),
        padding_degrees=float(mp.get("padding_degrees", 0.01)),
    )


def get_market_settings(config: dict[str, Any]) -> MarketSettings:
    """Extract regional listing defaults from config."""
    mk = config.get("market", {})
    prefixes = mk.get("reference_prefixes", {})
    if not isinstance(prefixes, dict):
        prefixes = {}
    return MarketSettings(
        property_prefix=str(prefixes.get("property", "BD")),
        provider_prefix=str(prefixes.get("provider", "SP")),
        country=str(mk.get("country", "Botswana")),
        currency=str(mk.get("currency", "BWP")),
        agency_name=str(mk.get("agency_name", "BeeDab Real Estate")),
        area_unit=str(mk.get("area_unit", "sqft")),
        lot_unit=str(mk.get("lot_unit", "sqft")),
        highlight_count=max(0, int(mk.get("highlight_count", 4))),
    )


def get_geocoding_settings(config: dict[str, Any]) -> GeocodingSettings:
    """Extract geocoder region and market bounds from config."""
    gc = config.get("geocoding", {})
    bounds = gc.get("bounds", {})
    if not isinstance(bounds, dict):
        bounds = {}
    return GeocodingSettings(
        region=str(gc.get("region", "bw")),
        address_suffix=str(gc.get("address_suffix", "Gaborone, Botswana")),
        min_latitude=float(bounds.get("min_latitude", -27.0)),
        max_latitude=float(bounds.get("max_latitude", -17.0)),
        min_longitude=float(bounds.get("min_longitude", 20.0)),
        max_longitude=float(bounds.get("max_longitude", 29.0)),
        timeout_seconds=float(gc.get("timeout_seconds", 10.0)),
    )


def get_storage_path(config: dict[str, Any]) -> Path:
    """Database file location (relative paths resolve against the CWD)."""
    st = config.get("storage", {})
    return Path(str(st.get("db_path", "output/listing_engine.duckdb")))
