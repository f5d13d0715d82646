"""Spherical Web Mercator maths for slippy-map tile grids.

At zoom ``z`` the world spans ``2**z`` tiles on each axis. Tile-space
coordinates are floats: the integer part is the tile index and the
fraction is the position inside the tile. ``y`` grows southwards, as in
the standard slippy-map convention.
"""

from __future__ import annotations

import math

from chartlink.models import Point

# Latitude where the Mercator square ends (the projection diverges at the poles).
MAX_LATITUDE = 85.0511287798066


def world_to_xy(lon: float, lat: float, zoom: int) -> Point:
    """Project longitude/latitude in degrees to tile-space coordinates at *zoom*."""
    zp = 2.0 ** zoom
    lat_rad = math.radians(lat)
    x = (lon + 180.0) / 360.0 * zp
    y = (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * zp
    return Point(x, y)


def xy_to_world(x: float, y: float, zoom: int) -> Point:
    """Inverse of :func:`world_to_xy`; returns ``Point(lon, lat)`` in degrees.

    Longitude is normalised into ``(-180, 180]``.
    """
    zp = 2.0 ** zoom
    lon = math.fmod(x / zp * 360.0 - 180.0, 360.0)
    if lon > 180.0:
        lon -= 360.0
    elif lon <= -180.0:
        lon += 360.0

    n = math.pi - 2.0 * math.pi * y / zp
    lat = math.degrees(math.atan(0.5 * (math.exp(n) - math.exp(-n))))
    return Point(lon, lat)


def transform_zoomed_point(x: float, y: float, old_zoom: int, new_zoom: int) -> Point:
    """Rescale a tile-space point from *old_zoom* to *new_zoom*.

    Scaling is by a power of two, so going there and back is exact.
    """
    if old_zoom == new_zoom:
        return Point(x, y)

    diff = new_zoom - old_zoom
    if diff > 0:
        factor = 1 << diff
        return Point(x * factor, y * factor)
    factor = 1 << -diff
    return Point(x / factor, y / factor)


def tile_count(zoom: int) -> int:
    """Number of tiles along one axis at *zoom*."""
    return 1 << zoom
