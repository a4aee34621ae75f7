"""
End-to-end generation for a query region.

generate() derives the mesh and seed from the query bounds, selects places,
builds the road network and packages both with GeoJSON for rendering.
"""

import math

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from pydantic import BaseModel, ConfigDict, Field
from shapely.geometry import LineString, Point, mapping

from .bounds import Bounds, mesh_from_options
from .network import Path, PathNetwork, create_network, create_paths_from_network
from .places import Place, load_places
from .sources import FeatureSource, FlatGeobufSource
from .tiles import TileXYZ, get_tile_coords_in_bounds
from .xorshift_prng import XorShiftPRNG

logger = structlog.get_logger()

UNSUPPORTED_REGION_MESSAGE = "対応していない地域です"


class GenerationOptions(BaseModel):
    """Tuning knobs for place selection and network construction."""

    model_config = ConfigDict(frozen=True)

    feature_margin01: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Clearance between places as a fraction of a mesh cell"
    )
    zoom_level_detailed: int = Field(
        default=10, description="Minimum zoom at which the detailed source group is read"
    )
    extract_margin_scale: float = Field(
        default=2.0, ge=1.0, description="Pool size, relative to a tier target, needed before drawing the tier"
    )
    useless_path_acceptance: float = Field(
        default=0.2, ge=0.0, le=1.0, description="Probability of keeping a cycle-forming road"
    )
    num_c: int = Field(default=5, ge=0, description="Target number of cities")
    num_t: int = Field(default=10, ge=0, description="Target number of towns")
    num_d: int = Field(default=15, ge=0, description="Target number of dummy places")

    mesh_shrink_factor: float = Field(
        default=0.1, ge=0.0, lt=0.5, description="Fraction trimmed from each side of the query before meshing"
    )
    mesh_lng_scale: float = Field(
        default=3.0, gt=0.0, description="Mesh columns per sqrt(total places)"
    )
    mesh_lat_scale: float = Field(
        default=2.0, gt=0.0, description="Mesh rows per sqrt(total places)"
    )


@dataclass
class GenerationResult:
    """Outcome of one generation query."""

    id: str
    result: str
    error_message: str = ""
    places: List[Place] = field(default_factory=list)
    paths: List[Path] = field(default_factory=list)
    network: Optional[PathNetwork] = None

    @property
    def succeeded(self) -> bool:
        return self.result == "success"

    def lines_geojson(self) -> Dict[str, Any]:
        """FeatureCollection with one LineString per path."""
        features = []
        for path in self.paths:
            line = LineString(
                [
                    (path.line.start.lng, path.line.start.lat),
                    (path.line.end.lng, path.line.end.lat),
                ]
            )
            features.append(
                {
                    "type": "Feature",
                    "geometry": mapping(line),
                    "properties": {"from": path.segment[0], "to": path.segment[1]},
                }
            )
        return {"type": "FeatureCollection", "features": features}

    def places_geojson(self) -> Dict[str, Any]:
        features = [
            {
                "type": "Feature",
                "geometry": mapping(Point(place.coordinates.lng, place.coordinates.lat)),
                "properties": {
                    "id": place.id,
                    "name": place.name,
                    "name_display": place.name_display,
                    "category": place.category.value,
                    "position": place.position,
                },
            }
            for place in self.places
        ]
        return {"type": "FeatureCollection", "features": features}


def generation_id(bounds: Bounds, zoom: float) -> str:
    return f"{bounds.west}-{bounds.south}-{bounds.east}-{bounds.north}-{zoom}"


async def generate(
    bounds: Bounds,
    zoom: float,
    options: GenerationOptions,
    source_groups: Sequence[Sequence[str]],
    source: Optional[FeatureSource] = None,
    tile_provider: Callable[[Bounds, int], List[TileXYZ]] = get_tile_coords_in_bounds,
) -> GenerationResult:
    """
    Generate places and roads for a query region.

    Args:
        bounds: Visible region
        zoom: Map zoom, floored to pick tiles
        options: Generation options
        source_groups: Ordered groups of source urls, most trusted first
        source: Feature source, FlatGeobuf reader by default
        tile_provider: Returns the tiles covering a region at a zoom

    Returns:
        Successful result, or an error result when the region has no places
    """
    query_id = generation_id(bounds, zoom)
    source = source or FlatGeobufSource()

    mesh = mesh_from_options(bounds, options)
    rng = XorShiftPRNG(mesh.seed)
    current_zoom = int(math.floor(zoom))

    tiles = tile_provider(bounds, current_zoom)
    logger.info("Starting generation", id=query_id, tiles=len(tiles), seed=mesh.seed)

    places = await load_places(
        tiles, options, mesh, current_zoom, source_groups, source, rng=rng
    )

    if not places:
        logger.warning("No places found for region", id=query_id)
        return GenerationResult(
            id=query_id, result="error", error_message=UNSUPPORTED_REGION_MESSAGE
        )

    place_network = create_network(places, mesh, options, rng=rng)
    network = create_paths_from_network(places, place_network)

    logger.info(
        "Generation complete", id=query_id, places=len(places), paths=len(network.paths)
    )
    return GenerationResult(
        id=query_id,
        result="success",
        places=places,
        paths=network.paths,
        network=network,
    )
