"""
Road network construction between selected places.

Process:
1. candidate_edges() - Delaunay triangulation of the places; each triangle
   side is a candidate road
2. build_backbone() - Kruskal over the candidates gives a spanning tree;
   cycle-forming candidates are set aside
3. create_network() - Keep a random share of the set-aside candidates
4. create_paths_from_network() - Route each road as an L with an axis-aligned
   elbow, split crossing routes at junctions, drop the longer of parallel
   edges and prune dangling non-place stubs
"""

from dataclasses import dataclass, field
from itertools import chain
from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

import numpy as np
import structlog

from scipy.spatial import Delaunay, QhullError

from .bounds import Mesh
from .geometry import Coordinates, LineSegment
from .places import Place
from .xorshift_prng import XorShiftPRNG

logger = structlog.get_logger()

ON_SEGMENT_TOLERANCE = 1e-6

# dicts keyed by neighbour keep insertion order, unlike sets
Adjacency = Dict[int, Dict[int, None]]


class DisjointSet:
    """Union-find over 0..size-1 with path compression."""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def root(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            next_i = self.parent[i]
            self.parent[i] = root
            i = next_i
        return root

    def union(self, i: int, j: int) -> None:
        """Attach the tree of i under the root of j."""
        self.parent[self.root(i)] = self.root(j)

    def connected(self, i: int, j: int) -> bool:
        return self.root(i) == self.root(j)


class PathCandidate(NamedTuple):
    """Undirected candidate road between two places, from_index < to_index."""
    from_index: int
    to_index: int
    distance: float


class Path(NamedTuple):
    """Renderable road segment between two network nodes."""
    line: LineSegment
    segment: Tuple[int, int]


@dataclass
class PathNetwork:
    """
    Routed network.

    Nodes are stored as elbows, then junctions, then one node per place in
    place order, so place i is node place_node_offset + i.
    """

    nodes: List[Coordinates]
    paths: List[Path]
    place_node_offset: int
    place_count: int
    adjacency: Dict[int, List[int]] = field(default_factory=dict)

    def node_for_place(self, place_index: int) -> int:
        if not 0 <= place_index < self.place_count:
            raise IndexError(f"Place index {place_index} out of range")
        return self.place_node_offset + place_index

    def place_for_node(self, node_index: int) -> Optional[int]:
        place_index = node_index - self.place_node_offset
        if 0 <= place_index < self.place_count:
            return place_index
        return None

    def is_place_node(self, node_index: int) -> bool:
        return self.place_for_node(node_index) is not None

    def degree(self, node_index: int) -> int:
        return len(self.adjacency.get(node_index, []))


def _collinear_chain(points: np.ndarray) -> List[Tuple[int, int]]:
    """Edges joining points in order along their dominant axis."""
    if len(points) < 2:
        return []
    extent = points.max(axis=0) - points.min(axis=0)
    axis = 0 if extent[0] >= extent[1] else 1
    order = [int(i) for i in np.argsort(points[:, axis], kind="stable")]
    return [(min(a, b), max(a, b)) for a, b in zip(order, order[1:])]


def _triangulation_edges(points: np.ndarray) -> List[Tuple[int, int]]:
    if len(points) < 3:
        return _collinear_chain(points)

    try:
        tri = Delaunay(points)
    except QhullError:
        # all points on one line
        logger.debug("Degenerate triangulation, chaining places", places=len(points))
        return _collinear_chain(points)

    edges = []
    seen: Set[Tuple[int, int]] = set()
    for simplex in tri.simplices:
        a, b, c = (int(v) for v in simplex)
        for u, v in ((a, b), (b, c), (c, a)):
            key = (min(u, v), max(u, v))
            if key in seen:
                continue
            seen.add(key)
            edges.append(key)
    return edges


def candidate_edges(places: Sequence[Place]) -> List[PathCandidate]:
    """
    Triangulate place coordinates and weight each side by its length.

    Triangulation runs on (lng, lat) points. Only triangle sides are ever
    candidates, never arbitrary pairs.
    """
    if not places:
        return []

    points = np.array([[p.coordinates.lng, p.coordinates.lat] for p in places], dtype=float)

    return [
        PathCandidate(a, b, places[a].coordinates.distance(places[b].coordinates))
        for a, b in _triangulation_edges(points)
    ]


def _link(network: Adjacency, a: int, b: int) -> None:
    network.setdefault(a, {})[b] = None


def build_backbone(
    candidates: Sequence[PathCandidate], size: int
) -> Tuple[Adjacency, List[PathCandidate]]:
    """
    Kruskal's algorithm restricted to the candidate edges.

    Returns:
        Tuple of (accepted adjacency from -> {to}, rejected candidates in
        ascending weight order)
    """
    disjoint_set = DisjointSet(size)
    accepted: Adjacency = {}
    rejected = []

    for path in sorted(candidates, key=lambda c: c.distance):
        if disjoint_set.connected(path.from_index, path.to_index):
            rejected.append(path)
            continue
        _link(accepted, path.from_index, path.to_index)
        disjoint_set.union(path.from_index, path.to_index)

    return accepted, rejected


def create_network(
    places: Sequence[Place],
    mesh: Mesh,
    options,
    rng: Optional[XorShiftPRNG] = None,
) -> Dict[int, List[int]]:
    """
    Choose which places are connected by roads.

    Args:
        places: Selected places
        mesh: Query mesh, its seed is used when rng is omitted
        options: GenerationOptions providing useless_path_acceptance
        rng: Shared generator of the generation run

    Returns:
        Mapping place index -> connected place indices (each undirected road
        stored once, under its smaller index)
    """
    candidates = candidate_edges(places)
    network, rejected = build_backbone(candidates, len(places))
    backbone_size = sum(len(tos) for tos in network.values())

    if rng is None:
        rng = XorShiftPRNG(mesh.seed)

    extra = 0
    for path in rejected:
        if rng.random() < options.useless_path_acceptance:
            _link(network, path.from_index, path.to_index)
            extra += 1

    logger.info(
        "Created place network",
        places=len(places),
        candidates=len(candidates),
        backbone=backbone_size,
        extra=extra,
    )
    return {from_index: list(tos) for from_index, tos in network.items()}


def _matching_node(
    nodes: Sequence[Coordinates], reserved: Sequence[Coordinates], point: Coordinates
) -> Optional[Coordinates]:
    for node in chain(nodes, reserved):
        if node.is_same(point):
            return node
    return None


def _route_lines(
    places: Sequence[Place], place_network: Dict[int, List[int]], nodes: List[Coordinates]
) -> List[LineSegment]:
    """
    Emit the L-shaped route of every road, appending elbows to nodes.

    An elbow close to an existing elbow or a place is snapped onto it, so the
    road's lines still meet at a node when they are rebuilt.
    """
    place_coordinates = [place.coordinates for place in places]
    lines = []
    for from_index, tos in place_network.items():
        for to_index in tos:
            start = places[from_index].coordinates
            end = places[to_index].coordinates

            if start.to_hash() < end.to_hash():
                elbow = Coordinates(start.lat, end.lng)
            else:
                elbow = Coordinates(end.lat, start.lng)

            # axis-aligned roads need no elbow
            if elbow.is_same(start) or elbow.is_same(end):
                lines.append(LineSegment(start, end))
                continue

            existing = _matching_node(nodes, place_coordinates, elbow)
            if existing is None:
                nodes.append(elbow)
            else:
                elbow = existing
            lines.append(LineSegment(start, elbow))
            lines.append(LineSegment(elbow, end))
    return lines


def _add_junctions(
    lines: Sequence[LineSegment], nodes: List[Coordinates], reserved: Sequence[Coordinates]
) -> int:
    """
    Add a node where two lines cross.

    A crossing is skipped only when a node already sits on both lines there.
    """
    added = 0
    for ci in range(len(lines)):
        for cj in range(ci + 1, len(lines)):
            point = lines[ci].intersection(lines[cj], include_endpoints=False)
            if not isinstance(point, Coordinates):
                continue
            covered = any(
                node.is_same(point)
                and lines[ci].is_on_segment(node, ON_SEGMENT_TOLERANCE) is not None
                and lines[cj].is_on_segment(node, ON_SEGMENT_TOLERANCE) is not None
                for node in chain(nodes, reserved)
            )
            if not covered:
                nodes.append(point)
                added += 1
    return added


def _unlink(network: Adjacency, a: int, b: int) -> None:
    network[a].pop(b, None)
    network[b].pop(a, None)


def _split_lines(lines: Sequence[LineSegment], nodes: Sequence[Coordinates]) -> Adjacency:
    """Connect consecutive nodes along every line."""
    network: Adjacency = {i: {} for i in range(len(nodes))}
    for line in lines:
        on_line = []
        for i, node in enumerate(nodes):
            relpos = line.is_on_segment(node, ON_SEGMENT_TOLERANCE)
            if relpos is not None:
                on_line.append((relpos, i))

        on_line.sort(key=lambda item: item[0])

        for (_, a), (_, b) in zip(on_line, on_line[1:]):
            network[a][b] = None
            network[b][a] = None
    return network


def _remove_parallel_edges(network: Adjacency, nodes: Sequence[Coordinates]) -> int:
    """
    Drop one edge of every two 2-hop routes between the same pair of nodes.

    Edge lengths are compared by Manhattan length.
    """
    removed = 0
    for i in range(len(nodes)):
        encountered: Dict[int, int] = {}
        for neighbor_1 in list(network[i]):
            for neighbor_2 in list(network[neighbor_1]):
                if neighbor_2 >= i:
                    continue
                if neighbor_2 not in encountered:
                    encountered[neighbor_2] = neighbor_1
                    continue

                neighbor_prev_1 = encountered[neighbor_2]
                line1 = LineSegment(nodes[neighbor_prev_1], nodes[i])
                line2 = LineSegment(nodes[neighbor_2], nodes[neighbor_1])
                if line1.manhattan_distance() > line2.manhattan_distance():
                    _unlink(network, neighbor_prev_1, i)
                else:
                    _unlink(network, neighbor_2, neighbor_1)
                removed += 1
    return removed


def _prune_dead_ends(network: Adjacency, place_nodes: Set[int]) -> int:
    """Repeatedly remove non-place nodes with fewer than two connections."""
    removed = 0
    while True:
        dead_ends = [
            node
            for node, tos in network.items()
            if len(tos) <= 1 and node not in place_nodes
        ]
        if not dead_ends:
            return removed
        for node in dead_ends:
            for to in network.pop(node):
                network[to].pop(node, None)
        removed += len(dead_ends)


def create_paths_from_network(
    places: Sequence[Place], place_network: Dict[int, List[int]]
) -> PathNetwork:
    """
    Turn the place network into routable segments.

    Args:
        places: Places the network indices refer to
        place_network: Output of create_network

    Returns:
        PathNetwork with one Path per surviving undirected edge
    """
    nodes: List[Coordinates] = []
    lines = _route_lines(places, place_network, nodes)
    elbows = len(nodes)

    junctions = _add_junctions(lines, nodes, [place.coordinates for place in places])

    place_node_offset = len(nodes)
    nodes.extend(place.coordinates for place in places)
    place_nodes = set(range(place_node_offset, len(nodes)))

    network = _split_lines(lines, nodes)
    parallel = _remove_parallel_edges(network, nodes)
    pruned = _prune_dead_ends(network, place_nodes)

    paths = [
        Path(LineSegment(nodes[a], nodes[b]), (a, b))
        for a, tos in network.items()
        for b in tos
        if a < b
    ]

    logger.info(
        "Routed network",
        lines=len(lines),
        elbows=elbows,
        junctions=junctions,
        parallel_removed=parallel,
        pruned=pruned,
        paths=len(paths),
    )
    return PathNetwork(
        nodes=nodes,
        paths=paths,
        place_node_offset=place_node_offset,
        place_count=len(places),
        adjacency={node: list(tos) for node, tos in network.items()},
    )
