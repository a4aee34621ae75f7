"""
Place selection from tiled point features.

Process:
1. load_features() - Fetch every (source, tile) pair concurrently, restore
   source order, then drop repeated names, shared mesh cells and crowded
   features
2. load_places() - Pool the survivors group by group and draw cities, towns
   and dummy fillers from the pool by seeded shuffling
"""

import asyncio

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from .bounds import Mesh
from .geometry import Coordinates
from .sources import FeatureSource, PointFeature
from .tiles import TileXYZ, tile_to_bbox
from .xorshift_prng import XorShiftPRNG

logger = structlog.get_logger()

_HIRAGANA_START = 0x3041
_HIRAGANA_END = 0x3096
_KATAKANA_OFFSET = 0x60


class PlaceCategory(str, Enum):
    CITY = "city"
    TOWN = "town"
    DUMMY = "dummy"


def hiragana_to_katakana(text: str) -> str:
    return "".join(
        chr(ord(ch) + _KATAKANA_OFFSET) if _HIRAGANA_START <= ord(ch) <= _HIRAGANA_END else ch
        for ch in text
    )


@dataclass(frozen=True)
class Place:
    """A selected point feature, promoted to a network place."""

    coordinates: Coordinates
    name: str
    category: PlaceCategory
    position: float

    @property
    def id(self) -> str:
        """Identity derived from name and canonical coordinates."""
        return f"{self.name}{self.coordinates.simplify()}"

    @property
    def name_display(self) -> str:
        suffix = "シティ" if self.category == PlaceCategory.CITY else "タウン"
        return hiragana_to_katakana(self.name) + suffix

    def name_hash(self) -> int:
        h = 0
        for ch in self.name:
            h = (h * 31 + ord(ch)) & 0xFFFFFFFF
        return h - 0x100000000 if h & 0x80000000 else h


def filter_feature_layers(
    feature_layers: Sequence[Sequence[PointFeature]],
    mesh: Mesh,
    feature_margin01: float,
    existing_coordinates: Iterable[Coordinates] = (),
    existing_mesh_ids: Iterable[int] = (),
) -> List[List[PointFeature]]:
    """
    Deduplicate ordered feature layers.

    Layers are processed in order, so a feature from a more trusted layer
    always wins over a later one. A feature is dropped when its name was
    already seen, when its mesh cell is taken or off the mesh, or when it
    sits within feature_margin01 of a cell (on both axes) of an accepted
    coordinate.

    Args:
        feature_layers: One feature list per source, most trusted first
        mesh: Mesh used for cell IDs and margin widths
        feature_margin01: Fraction of a mesh cell kept as clearance
        existing_coordinates: Coordinates accepted by earlier passes
        existing_mesh_ids: Mesh cells claimed by earlier passes

    Returns:
        Filtered layers, same order as the input
    """
    names: Set[str] = set()
    mesh_ids: Set[int] = set(existing_mesh_ids)
    accepted: List[Coordinates] = list(existing_coordinates)

    margin_lng = mesh.mesh_normal_lng() * feature_margin01
    margin_lat = mesh.mesh_normal_lat() * feature_margin01

    filtered_layers = []
    for layer in feature_layers:
        unique_names = []
        for feature in layer:
            if feature.name in names:
                continue
            names.add(feature.name)
            unique_names.append(feature)

        unique_cells = []
        for feature in unique_names:
            mesh_id = mesh.mesh_id(feature.coordinates)
            if mesh_id is None or mesh_id in mesh_ids:
                continue
            mesh_ids.add(mesh_id)
            unique_cells.append(feature)

        margined = []
        for feature in unique_cells:
            coord = feature.coordinates
            crowded = any(
                abs(other.lng - coord.lng) < margin_lng
                and abs(other.lat - coord.lat) < margin_lat
                for other in accepted
            )
            if crowded:
                continue
            accepted.append(coord)
            margined.append(feature)

        filtered_layers.append(margined)

    return filtered_layers


async def _load_source(
    index: int,
    url: str,
    bboxes: Sequence[Tuple[float, float, float, float]],
    source: FeatureSource,
    existing_names: Set[str],
) -> Tuple[int, List[PointFeature]]:
    results = await asyncio.gather(
        *(source(url, bbox) for bbox in bboxes), return_exceptions=True
    )

    errors = [r for r in results if isinstance(r, Exception)]
    if errors:
        logger.warning(
            "Failed to load features, using none from this source",
            url=url,
            error=str(errors[0]),
            failed_tiles=len(errors),
        )
        return index, []

    features = [
        feature
        for tile_features in results
        for feature in tile_features
        if feature.name not in existing_names
    ]
    return index, features


async def load_features(
    urls: Sequence[str],
    tiles: Sequence[TileXYZ],
    mesh: Mesh,
    feature_margin01: float,
    source: FeatureSource,
    existing_names: Optional[Set[str]] = None,
    existing_coordinates: Iterable[Coordinates] = (),
    existing_mesh_ids: Iterable[int] = (),
) -> List[List[PointFeature]]:
    """
    Fetch and deduplicate the features of one group of sources.

    All (url, tile) reads run concurrently. A failing read empties its
    source's layer instead of failing the group. Results are put back in
    url order before any filtering so completion order never matters.

    Returns:
        One filtered feature list per url
    """
    existing_names = existing_names or set()
    bboxes = [tile_to_bbox(tile) for tile in tiles]

    results = await asyncio.gather(
        *(
            _load_source(i, url, bboxes, source, existing_names)
            for i, url in enumerate(urls)
        )
    )
    feature_layers = [features for _, features in sorted(results, key=lambda r: r[0])]

    return filter_feature_layers(
        feature_layers,
        mesh,
        feature_margin01,
        existing_coordinates=existing_coordinates,
        existing_mesh_ids=existing_mesh_ids,
    )


def extract_tier(
    pool: List[PointFeature], count: int, rng: XorShiftPRNG
) -> Tuple[List[PointFeature], List[PointFeature]]:
    """
    Draw count features from pool without replacement.

    Returns:
        Tuple of (drawn features in draw order, remaining pool in pool order)
    """
    indices = rng.shuffled_indices(len(pool))[:count]
    chosen = set(indices)
    tier = [pool[i] for i in indices]
    rest = [feature for i, feature in enumerate(pool) if i not in chosen]
    return tier, rest


def _to_places(
    features: Sequence[PointFeature], category: PlaceCategory, target: int
) -> List[Place]:
    # backfilled tiers can outnumber their target
    divisor = max(target, len(features))
    return [
        Place(feature.coordinates, feature.name, category, i / divisor)
        for i, feature in enumerate(features)
    ]


async def load_places(
    tiles: Sequence[TileXYZ],
    options,
    mesh: Mesh,
    current_zoom: int,
    source_groups: Sequence[Sequence[str]],
    source: FeatureSource,
    rng: Optional[XorShiftPRNG] = None,
) -> List[Place]:
    """
    Select cities, towns and dummy places for a query.

    Source groups are read one after another, each broader and less trusted
    than the last; groups after the second are only read at zoom levels of
    at least options.zoom_level_detailed. A tier is drawn as soon as the pool
    holds extract_margin_scale times its target, so the draw stays random
    rather than taking the first features found.

    Args:
        tiles: Tiles covering the query
        options: GenerationOptions
        mesh: Query mesh
        current_zoom: Integer zoom of the query
        source_groups: Ordered groups of source urls
        source: Feature source used for every read
        rng: Shared generator; seeded from the mesh when omitted

    Returns:
        Cities, then towns, then dummies
    """
    if rng is None:
        rng = XorShiftPRNG(mesh.seed)

    scale = options.extract_margin_scale
    cities: Optional[List[PointFeature]] = None
    towns: Optional[List[PointFeature]] = None
    dummies: Optional[List[PointFeature]] = None
    pool: List[PointFeature] = []

    for group_index, urls in enumerate(source_groups):
        if group_index >= 2 and current_zoom < options.zoom_level_detailed:
            break

        accepted = pool + (cities or []) + (towns or [])
        logger.info(
            "Loading source group",
            group=group_index,
            sources=len(urls),
            tiles=len(tiles),
            accepted=len(accepted),
        )
        feature_layers = await load_features(
            urls,
            tiles,
            mesh,
            options.feature_margin01,
            source,
            existing_names={f.name for f in accepted},
            existing_coordinates=[f.coordinates for f in accepted],
            existing_mesh_ids={
                mesh_id
                for mesh_id in (mesh.mesh_id(f.coordinates) for f in accepted)
                if mesh_id is not None
            },
        )

        for layer in feature_layers:
            pool.extend(layer)

            if cities is None and len(pool) >= options.num_c * scale:
                cities, pool = extract_tier(pool, options.num_c, rng)
                logger.info("Extracted cities", count=len(cities))

            if cities is not None and towns is None and len(pool) >= options.num_t * scale:
                towns, pool = extract_tier(pool, options.num_t, rng)
                logger.info("Extracted towns", count=len(towns))

            if towns is not None and dummies is None and len(pool) >= options.num_d * scale:
                dummies, pool = extract_tier(pool, options.num_d, rng)
                logger.info("Extracted dummies", count=len(dummies))

            if dummies is not None:
                break
        if dummies is not None:
            break

    cities = cities or []
    towns = towns or []
    dummies = dummies or []

    if not towns:
        towns, cities = extract_tier(cities, options.num_c // 2, rng)
        if towns:
            logger.info("Moved cities to towns", count=len(towns))

    places = (
        _to_places(cities, PlaceCategory.CITY, options.num_c)
        + _to_places(towns, PlaceCategory.TOWN, options.num_t)
        + _to_places(dummies, PlaceCategory.DUMMY, options.num_d)
    )
    logger.info(
        "Selected places",
        cities=len(cities),
        towns=len(towns),
        dummies=len(dummies),
    )
    return places
