"""
Planar geometry kernel for place networks.

Coordinates are treated as a flat (lat, lng) plane rather than a sphere.
Distances are therefore in degrees, which keeps results reproducible and is
good enough for the short hops a generated road network makes.
"""

import math

from dataclasses import dataclass
from typing import Optional, Union

EPS = 1e-10
SAME_TOLERANCE = 1e-3

_MASK32 = 0xFFFFFFFF


def _to_int32(n: int) -> int:
    """Interpret the low 32 bits of n as a signed integer."""
    n &= _MASK32
    return n - 0x100000000 if n & 0x80000000 else n


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _format_number(value: float) -> str:
    text = f"{value + 0.0:.3f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def xorshift32(seed: int) -> int:
    """
    Single xorshift32 step, returned as a signed 32-bit integer.

    Used to scatter coordinate hashes, not as a random stream; see
    XorShiftPRNG for that.
    """
    x = seed & _MASK32
    x ^= (x << 13) & _MASK32
    x ^= x >> 17
    x ^= (x << 5) & _MASK32
    return _to_int32(x)


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair."""

    lat: float
    lng: float

    def is_same(self, other: "Coordinates") -> bool:
        return abs(self.lat - other.lat) + abs(self.lng - other.lng) < SAME_TOLERANCE

    def distance(self, other: "Coordinates") -> float:
        return math.hypot(self.lat - other.lat, self.lng - other.lng)

    def simplify(self) -> "Coordinates":
        """Round both axes to 3 decimal places (canonical form)."""
        return Coordinates(
            _round_half_up(self.lat * 1e3) / 1e3,
            _round_half_up(self.lng * 1e3) / 1e3,
        )

    def to_hash(self) -> int:
        simplified = self.simplify()
        return xorshift32(_round_half_up(simplified.lat * 1e6 + simplified.lng * 1e6))

    def __str__(self) -> str:
        return f"({_format_number(self.lat)}, {_format_number(self.lng)})"


@dataclass(frozen=True)
class LineSegment:
    """Directed segment from start to end."""

    start: Coordinates
    end: Coordinates

    def is_degenerate(self) -> bool:
        return self.start.lat == self.end.lat and self.start.lng == self.end.lng

    def intersection(
        self, other: "LineSegment", include_endpoints: bool = True
    ) -> Optional[Union[Coordinates, "LineSegment"]]:
        return intersection(self, other, include_endpoints)

    def relative_position(self, point: Coordinates) -> float:
        """
        Parameter t such that point ~= start + t * (end - start).

        Axis-aligned segments divide along their single moving axis. A
        zero-length segment has no parametrisation and yields NaN.
        """
        x0, y0 = self.start.lng, self.start.lat
        dx = self.end.lng - x0
        dy = self.end.lat - y0

        if dx == 0 and dy == 0:
            return math.nan
        if dx == 0:
            return (point.lat - y0) / dy
        if dy == 0:
            return (point.lng - x0) / dx

        return ((point.lng - x0) * dx + (point.lat - y0) * dy) / (dx * dx + dy * dy)

    def point_at(self, t: float) -> Coordinates:
        return Coordinates(
            self.start.lat + t * (self.end.lat - self.start.lat),
            self.start.lng + t * (self.end.lng - self.start.lng),
        )

    def is_on_segment(self, point: Coordinates, limit_distance: float) -> Optional[float]:
        """
        Return the relative position of point if it lies on this segment.

        Args:
            point: Point to test
            limit_distance: Maximum distance between point and its projection

        Returns:
            t in [0, 1], or None when the point is off the segment
        """
        relpos = self.relative_position(point)
        # NaN fails both comparisons
        if not 0 <= relpos <= 1:
            return None

        if point.distance(self.point_at(relpos)) < limit_distance:
            return relpos
        return None

    def manhattan_distance(self) -> float:
        return abs(self.start.lat - self.end.lat) + abs(self.start.lng - self.end.lng)

    def length(self) -> float:
        return self.start.distance(self.end)


def distance(a: Coordinates, b: Coordinates) -> float:
    return a.distance(b)


def is_same(a: Coordinates, b: Coordinates) -> bool:
    return a.is_same(b)


def _point_on_line(point: Coordinates, line: LineSegment) -> Optional[Coordinates]:
    if line.is_degenerate():
        return point if point.is_same(line.start) else None
    if line.is_on_segment(point, EPS) is not None:
        return point
    return None


def _touches_endpoint(point: Coordinates, line1: LineSegment, line2: LineSegment) -> bool:
    return any(
        point.is_same(end)
        for end in (line1.start, line1.end, line2.start, line2.end)
    )


def intersection(
    line1: LineSegment, line2: LineSegment, include_endpoints: bool = True
) -> Optional[Union[Coordinates, LineSegment]]:
    """
    Intersect two segments.

    Returns a Coordinates for a crossing or single-point touch, a LineSegment
    for a collinear overlap of positive length, or None. With
    include_endpoints=False a point result lying on an endpoint of either
    segment is discarded, so segments that merely meet at a shared place do
    not count as crossing.
    """
    result = _intersection(line1, line2)
    if (
        not include_endpoints
        and isinstance(result, Coordinates)
        and _touches_endpoint(result, line1, line2)
    ):
        return None
    return result


def _intersection(
    line1: LineSegment, line2: LineSegment
) -> Optional[Union[Coordinates, LineSegment]]:
    if line1.is_degenerate():
        return _point_on_line(line1.start, line2)
    if line2.is_degenerate():
        return _point_on_line(line2.start, line1)

    p0, p1 = line1.start, line1.end
    p2, p3 = line2.start, line2.end

    s1_x = p1.lng - p0.lng
    s1_y = p1.lat - p0.lat
    s2_x = p3.lng - p2.lng
    s2_y = p3.lat - p2.lat

    denominator = s1_x * s2_y - s1_y * s2_x

    if abs(denominator) < EPS:
        # parallel; only collinear segments can still overlap
        cross = (p2.lng - p0.lng) * s1_y - (p2.lat - p0.lat) * s1_x
        if abs(cross) > EPS:
            return None

        # parametrise along the axis with the larger extent
        if abs(s1_x) > abs(s1_y):
            t2 = (p2.lng - p0.lng) / s1_x
            t3 = (p3.lng - p0.lng) / s1_x
        else:
            t2 = (p2.lat - p0.lat) / s1_y
            t3 = (p3.lat - p0.lat) / s1_y
        if t2 > t3:
            t2, t3 = t3, t2

        t_start = max(0.0, t2)
        t_end = min(1.0, t3)
        if t_start > t_end:
            return None
        if abs(t_start - t_end) < EPS:
            return line1.point_at(t_start)
        return LineSegment(line1.point_at(t_start), line1.point_at(t_end))

    s = (-s1_y * (p0.lng - p2.lng) + s1_x * (p0.lat - p2.lat)) / denominator
    t = (s2_x * (p0.lat - p2.lat) - s2_y * (p0.lng - p2.lng)) / denominator

    if 0 <= s <= 1 and 0 <= t <= 1:
        return line1.point_at(t)
    return None
