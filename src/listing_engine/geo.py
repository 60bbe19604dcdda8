"""Coordinate validation and map viewport helpers."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from .models import MapSettings, ValidCoordinate, Viewport

logger = logging.getLogger(__name__)

# Span (degrees) that fits exactly at max zoom
_ZOOM_REFERENCE_SPAN = 0.1


def _coerce(value: Any) -> float | None:
    """Coerce a loosely-typed coordinate to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            num = float(s)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def validate(lat: Any, lng: Any) -> ValidCoordinate | None:
    """Validate a latitude/longitude pair of unknown type.

    Returns a ``ValidCoordinate`` when both values coerce to numbers inside
    [-90, 90] / [-180, 180]. Zero on either axis is the stored "unset"
    sentinel and is rejected. Any failure yields ``None``.
    """
    latitude = _coerce(lat)
    longitude = _coerce(lng)
    if latitude is None or longitude is None:
        return None
    if not -90 <= latitude <= 90 or latitude == 0:
        return None
    if not -180 <= longitude <= 180 or longitude == 0:
        return None
    return ValidCoordinate(latitude=latitude, longitude=longitude)


def is_valid(lat: Any, lng: Any) -> bool:
    return validate(lat, lng) is not None


def compute_viewport(
    points: Iterable[tuple[Any, Any]],
    settings: MapSettings | None = None,
) -> Viewport:
    """Center and zoom that keep every valid point in view.

    Invalid points are skipped. With no valid points the configured default
    center and zoom are returned; a single point is centered at max zoom.
    """
    settings = settings or MapSettings()
    valid: list[ValidCoordinate] = []
    skipped = 0
    for lat, lng in points:
        coord = validate(lat, lng)
        if coord is None:
            skipped += 1
            continue
        valid.append(coord)
    if skipped:
        logger.debug("Viewport skipped %d points with invalid coordinates", skipped)

    if not valid:
        return Viewport(
            latitude=settings.default_latitude,
            longitude=settings.default_longitude,
            zoom=settings.default_zoom,
            point_count=0,
        )
    if len(valid) == 1:
        return Viewport(
            latitude=valid[0].latitude,
            longitude=valid[0].longitude,
            zoom=settings.max_zoom,
            point_count=1,
        )

    pad = settings.padding_degrees
    min_lat = min(c.latitude for c in valid) - pad
    max_lat = max(c.latitude for c in valid) + pad
    min_lng = min(c.longitude for c in valid) - pad
    max_lng = max(c.longitude for c in valid) + pad

    span = max(max_lat - min_lat, max_lng - min_lng)
    if span <= 0:
        zoom = settings.max_zoom
    else:
        zoom = settings.max_zoom - math.log2(span / _ZOOM_REFERENCE_SPAN)
    zoom = min(settings.max_zoom, max(settings.min_zoom, zoom))

    return Viewport(
        latitude=(min_lat + max_lat) / 2,
        longitude=(min_lng + max_lng) / 2,
        zoom=zoom,
        point_count=len(valid),
    )
