"""Google Geocoding API client restricted to the configured market.

Uses https://maps.googleapis.com/maps/api/geocode/json with a region bias
and a bounding-box check on the result.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from . import geo
from .models import GeocodingSettings, ValidCoordinate

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GoogleGeocoder:
    """
    Resolves free-text addresses to coordinates.

    Every failure (missing key, HTTP error, no results, out-of-market result)
    returns None with a warning; callers treat the address as unlocated.
    """

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.Client | None = None,
        settings: GeocodingSettings | None = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("GOOGLE_MAPS_API_KEY", "")
        self.settings = settings or GeocodingSettings()
        self._client = client

    def _query(self, address: str) -> str:
        suffix = self.settings.address_suffix
        if suffix and suffix.lower() not in address.lower():
            return f"{address}, {suffix}"
        return address

    def _in_market(self, lat: float, lng: float) -> bool:
        s = self.settings
        return s.min_latitude <= lat <= s.max_latitude and s.min_longitude <= lng <= s.max_longitude

    def _get(self, params: dict[str, str]) -> dict[str, Any]:
        if self._client is not None:
            resp = self._client.get(GEOCODE_URL, params=params)
        else:
            with httpx.Client(timeout=self.settings.timeout_seconds) as client:
                resp = client.get(GEOCODE_URL, params=params)
        resp.raise_for_status()
        return resp.json()

    def geocode(self, address: str) -> ValidCoordinate | None:
        if not address or not address.strip():
            return None
        if not self.api_key:
            logger.warning("GOOGLE_MAPS_API_KEY not set; skipping geocoding")
            return None

        query = self._query(address.strip())
        params = {"address": query, "key": self.api_key, "region": self.settings.region}
        try:
            data = self._get(params)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geocoding request failed for %r: %s", query, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Geocoding returned an unexpected payload for %r", query)
            return None
        status = data.get("status")
        results = data.get("results") or []
        if status != "OK" or not results:
            logger.warning("Geocoding failed for %r: %s", query, status)
            return None

        location = (results[0].get("geometry") or {}).get("location") or {}
        coord = geo.validate(location.get("lat"), location.get("lng"))
        if coord is None:
            logger.warning("Geocoding returned an invalid location for %r: %s", query, location)
            return None
        if not self._in_market(coord.latitude, coord.longitude):
            logger.warning(
                "Geocoded location for %r is outside the market bounds: %s, %s",
                query,
                coord.latitude,
                coord.longitude,
            )
            return None
        return coord
