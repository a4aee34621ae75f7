"""Slippy-map (XYZ) tile math."""

import math

from typing import List, NamedTuple

from .bounds import BBox, Bounds

MAX_LATITUDE = 85.05112878


class TileXYZ(NamedTuple):
    """Web Mercator tile address."""
    x: int
    y: int
    z: int


def _clamp_index(value: int, zoom: int) -> int:
    return max(0, min(value, 2 ** zoom - 1))


def lng_to_tile_x(lng: float, zoom: int) -> int:
    return _clamp_index(int(math.floor((lng + 180.0) / 360.0 * 2 ** zoom)), zoom)


def lat_to_tile_y(lat: float, zoom: int) -> int:
    lat = max(min(lat, MAX_LATITUDE), -MAX_LATITUDE)
    rad = math.radians(lat)
    y = (1.0 - math.log(math.tan(rad) + 1.0 / math.cos(rad)) / math.pi) / 2.0 * 2 ** zoom
    return _clamp_index(int(math.floor(y)), zoom)


def get_tile_coords_in_bounds(bounds: Bounds, zoom: int) -> List[TileXYZ]:
    """
    List the tiles covering bounds at the given zoom.

    Tile rows grow southwards, so the north edge gives the smallest y.
    """
    x_min = lng_to_tile_x(bounds.west, zoom)
    x_max = lng_to_tile_x(bounds.east, zoom)
    y_min = lat_to_tile_y(bounds.north, zoom)
    y_max = lat_to_tile_y(bounds.south, zoom)

    return [
        TileXYZ(x, y, zoom)
        for x in range(x_min, x_max + 1)
        for y in range(y_min, y_max + 1)
    ]


def tile_to_bbox(tile: TileXYZ) -> BBox:
    """Return (west, south, east, north) of a tile in degrees."""
    n = 2 ** tile.z

    def lng(x: int) -> float:
        return x / n * 360.0 - 180.0

    def lat(y: int) -> float:
        return math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))

    return (lng(tile.x), lat(tile.y + 1), lng(tile.x + 1), lat(tile.y))
