"""Query regions and the dedup mesh laid over them."""

import math

from dataclasses import dataclass
from typing import Optional, Tuple

from .geometry import Coordinates, xorshift32

BBox = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Bounds:
    """Rectangular region given by its south-west and north-east corners."""

    sw: Coordinates
    ne: Coordinates

    @classmethod
    def from_wsen(cls, west: float, south: float, east: float, north: float) -> "Bounds":
        return cls(Coordinates(south, west), Coordinates(north, east))

    @property
    def west(self) -> float:
        return self.sw.lng

    @property
    def south(self) -> float:
        return self.sw.lat

    @property
    def east(self) -> float:
        return self.ne.lng

    @property
    def north(self) -> float:
        return self.ne.lat

    @property
    def width(self) -> float:
        return self.ne.lng - self.sw.lng

    @property
    def height(self) -> float:
        return self.ne.lat - self.sw.lat

    def relative_xy01(self, coord: Coordinates) -> Tuple[float, float]:
        """Map coord into [0, 1] x [0, 1] when it lies inside the bounds."""
        x = (coord.lng - self.sw.lng) / self.width
        y = (coord.lat - self.sw.lat) / self.height
        return x, y

    def contains(self, coord: Coordinates) -> bool:
        return (
            self.sw.lng <= coord.lng <= self.ne.lng
            and self.sw.lat <= coord.lat <= self.ne.lat
        )

    def shrink(self, factor: float) -> "Bounds":
        """Move every edge inwards by factor of the corresponding extent."""
        return Bounds.from_wsen(
            self.sw.lng + self.width * factor,
            self.sw.lat + self.height * factor,
            self.ne.lng - self.width * factor,
            self.ne.lat - self.height * factor,
        )

    def merge(self, other: "Bounds") -> "Bounds":
        return Bounds.from_wsen(
            min(self.west, other.west),
            min(self.south, other.south),
            max(self.east, other.east),
            max(self.north, other.north),
        )

    def center(self) -> Coordinates:
        return Coordinates(
            (self.sw.lat + self.ne.lat) / 2, (self.sw.lng + self.ne.lng) / 2
        )

    def recenter(self, center: Coordinates) -> "Bounds":
        """Same-sized bounds centred on center."""
        half_w = self.width / 2
        half_h = self.height / 2
        return Bounds.from_wsen(
            center.lng - half_w,
            center.lat - half_h,
            center.lng + half_w,
            center.lat + half_h,
        )

    def to_bbox(self) -> BBox:
        return (self.west, self.south, self.east, self.north)

    def to_hash(self) -> int:
        """Reproducible region hash built from both canonical corners."""
        return xorshift32(self.sw.to_hash() * 31 + self.ne.to_hash())


@dataclass(frozen=True)
class Mesh:
    """
    Fixed-resolution grid over a region.

    Each coordinate inside the region falls into exactly one cell; the cell
    ID is used to keep at most one feature per cell.
    """

    bounds: Bounds
    size_lng: int
    size_lat: int

    def mesh_indices(self, coord: Coordinates) -> Optional[Tuple[int, int]]:
        x, y = self.bounds.relative_xy01(coord)
        if x < 0 or x > 1 or y < 0 or y > 1:
            return None
        # the far edge belongs to the last cell
        ix = min(int(math.floor(x * self.size_lng)), self.size_lng - 1)
        iy = min(int(math.floor(y * self.size_lat)), self.size_lat - 1)
        return ix, iy

    def mesh_id(self, coord: Coordinates) -> Optional[int]:
        indices = self.mesh_indices(coord)
        if indices is None:
            return None
        return indices[1] * self.size_lng + indices[0]

    def mesh_normal_lng(self) -> float:
        """Cell width in degrees of longitude."""
        return abs(self.bounds.width) / self.size_lng

    def mesh_normal_lat(self) -> float:
        """Cell height in degrees of latitude."""
        return abs(self.bounds.height) / self.size_lat

    @property
    def seed(self) -> int:
        return self.bounds.to_hash()


def mesh_from_options(bounds: Bounds, options) -> Mesh:
    """
    Build the mesh for a query.

    Args:
        bounds: Visible query region
        options: GenerationOptions providing target counts and mesh scales

    Returns:
        Mesh over the shrunk region, resolution growing with sqrt(place count)
    """
    total = options.num_c + options.num_t + options.num_d
    base = math.sqrt(total)
    return Mesh(
        bounds=bounds.shrink(options.mesh_shrink_factor),
        size_lng=max(1, math.ceil(base * options.mesh_lng_scale)),
        size_lat=max(1, math.ceil(base * options.mesh_lat_scale)),
    )
