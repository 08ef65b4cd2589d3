"""Geospatial helpers: coordinate normalization and viewport math."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from . import config
from .models import GeoPoint

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def in_service_area(lat: float, lng: float) -> bool:
    bbox = config.SERVICE_BBOX
    return bbox["lat_min"] <= lat <= bbox["lat_max"] and bbox["lon_min"] <= lng <= bbox["lon_max"]


def normalize(raw_x: Any, raw_y: Any) -> Optional[GeoPoint]:
    """Convert an upstream (mapx, mapy) pair into a validated GeoPoint.

    The upstream sends either plain WGS84 degrees or the same degrees as
    fixed-point integers scaled by 10^7. Either value reaching the threshold
    marks the scaled encoding. Zero means "missing" upstream. Anything outside
    the service area is treated as corrupt and yields None.
    """
    x = _to_float(raw_x)
    y = _to_float(raw_y)
    if not x or not y:
        return None

    if abs(x) >= config.KATEC_THRESHOLD or abs(y) >= config.KATEC_THRESHOLD:
        lng = x / config.KATEC_SCALE
        lat = y / config.KATEC_SCALE
    else:
        lng = x
        lat = y

    if not in_service_area(lat, lng):
        logger.debug("Coordinates out of service area: (%s, %s) from mapx=%r mapy=%r", lat, lng, raw_x, raw_y)
        return None
    return GeoPoint(lat=lat, lng=lng)


def format_coordinates(lat: float, lng: float) -> str:
    lat_dir = "N" if lat >= 0 else "S"
    lng_dir = "E" if lng >= 0 else "W"
    return f"{abs(lat):.4f}°{lat_dir}, {abs(lng):.4f}°{lng_dir}"


def directions_url(lat: float, lng: float) -> str:
    return config.MAP_DIRECTIONS_URL.format(lat=lat, lng=lng)


@dataclass(frozen=True)
class Viewport:
    center: GeoPoint
    south: Optional[float] = None
    west: Optional[float] = None
    north: Optional[float] = None
    east: Optional[float] = None
    fallback: bool = False

    @property
    def has_bounds(self) -> bool:
        return self.south is not None


def default_viewport() -> Viewport:
    center = config.DEFAULT_CENTER
    return Viewport(center=GeoPoint(lat=center["lat"], lng=center["lon"]), fallback=True)


def bounding_viewport(points: Iterable[Optional[GeoPoint]]) -> Viewport:
    """Smallest viewport containing every point.

    None entries are skipped. With nothing usable, or when the centre comes out
    invalid, the camera falls back to the default centre.
    """
    south = west = math.inf
    north = east = -math.inf
    count = 0
    for point in points:
        if point is None:
            continue
        south = min(south, point.lat)
        north = max(north, point.lat)
        west = min(west, point.lng)
        east = max(east, point.lng)
        count += 1

    if count == 0:
        return default_viewport()

    center_lat = (south + north) / 2
    center_lng = (west + east) / 2
    if not (math.isfinite(center_lat) and math.isfinite(center_lng)) or not in_service_area(
        center_lat, center_lng
    ):
        logger.warning("Computed map centre (%s, %s) is invalid; using default", center_lat, center_lng)
        return default_viewport()

    return Viewport(
        center=GeoPoint(lat=center_lat, lng=center_lng),
        south=south,
        west=west,
        north=north,
        east=east,
    )
