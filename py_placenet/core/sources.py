"""
Point feature sources.

A feature source is any coroutine function ``source(url, bbox)`` returning
the named point features of one data file clipped to a bounding box. The
default reads FlatGeobuf files (local paths or HTTP URLs) with geopandas.
"""

import asyncio

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import geopandas as gpd
import structlog

from .bounds import BBox
from .geometry import Coordinates

logger = structlog.get_logger()


@dataclass(frozen=True)
class PointFeature:
    """Named point decoded from source data."""

    coordinates: Coordinates
    name: str


FeatureSource = Callable[[str, BBox], Awaitable[List[PointFeature]]]


def point_features_from_geojson(features: Iterable[Dict[str, Any]]) -> List[PointFeature]:
    """
    Convert GeoJSON point features to PointFeatures.

    GeoJSON stores positions as [lng, lat]. Features without a name are
    skipped since names identify places.
    """
    result = []
    for feature in features:
        name = (feature.get("properties") or {}).get("name")
        if not name:
            continue
        lng, lat = feature["geometry"]["coordinates"][:2]
        result.append(PointFeature(Coordinates(float(lat), float(lng)), str(name)))
    return result


class FlatGeobufSource:
    """Reads named points from FlatGeobuf data using the file's spatial index."""

    def __init__(self, name_column: str = "name", engine: Optional[str] = "pyogrio"):
        self.name_column = name_column
        self.engine = engine

    async def __call__(self, url: str, bbox: BBox) -> List[PointFeature]:
        return await asyncio.to_thread(self.read, url, bbox)

    def read(self, url: str, bbox: BBox) -> List[PointFeature]:
        gdf = gpd.read_file(url, bbox=bbox, engine=self.engine)
        if gdf.empty or self.name_column not in gdf.columns:
            return []

        features = []
        for geometry, name in zip(gdf.geometry, gdf[self.name_column]):
            if geometry is None or geometry.is_empty or geometry.geom_type != "Point":
                continue
            if not isinstance(name, str) or not name:
                continue
            features.append(PointFeature(Coordinates(geometry.y, geometry.x), name))

        logger.debug("Read point features", url=url, count=len(features))
        return features
