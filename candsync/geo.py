"""
Geospatial math: great-circle distance and Web-Mercator projection between
geographic coordinates, the normalized world plane and viewport pixels.
"""
import math
from typing import Tuple

from candsync.config import TILE_SIZE

EARTH_RADIUS_M = 6378137.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters on a spherical Earth."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance(p1, p2) -> float:
    """
    Distance in meters between two points exposing `lat` and `lng`.

    Args:
        p1: First point (Candidate, Nomination, or anything with lat/lng).
        p2: Second point.

    Returns:
        float: Haversine distance in meters.
    """
    return haversine_m(float(p1.lat), float(p1.lng), float(p2.lat), float(p2.lng))


def to_world(lng: float, lat: float) -> Tuple[float, float]:
    """Project lng/lat onto the unit world square (Web-Mercator)."""
    sin_y = math.sin(math.radians(lat))
    x = (lng + 180.0) / 360.0
    y = 0.5 - math.log((1 + sin_y) / (1 - sin_y)) / (4 * math.pi)
    return x, y


def to_geo(x: float, y: float) -> Tuple[float, float]:
    """Inverse of `to_world`: unit world square -> (lng, lat)."""
    lng = x * 360.0 - 180.0
    n = math.pi - 2 * math.pi * y
    lat = math.degrees(math.atan(math.sinh(n)))
    return lng, lat


def world_size(zoom: float) -> float:
    """Pixel width of the whole world at the given zoom."""
    return TILE_SIZE * math.pow(2, zoom)


def viewport_to_screen(
    lng: float,
    lat: float,
    center: Tuple[float, float],
    zoom: float,
    width: float,
    height: float,
) -> Tuple[float, float]:
    """
    Pixel position of a geographic point inside a viewport.

    Args:
        lng, lat: Point to project.
        center: Viewport center as (lng, lat).
        zoom: Map zoom level.
        width, height: Viewport size in pixels.

    Returns:
        Tuple[float, float]: (x, y) pixel coordinates, origin at the top-left corner.
    """
    size = world_size(zoom)
    cx, cy = to_world(center[0], center[1])
    px, py = to_world(lng, lat)
    return width / 2 + (px - cx) * size, height / 2 + (py - cy) * size
