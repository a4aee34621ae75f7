"""
Unit tests for place selection.

Tests cover:
- Place identity and display names
- Layer deduplication (names, mesh cells, margins)
- Concurrent loading, ordering and failure handling
- Tier extraction, zoom gating and town backfill
"""

import asyncio

import pytest

from py_placenet.core.bounds import Bounds, Mesh
from py_placenet.core.generation import GenerationOptions
from py_placenet.core.geometry import Coordinates
from py_placenet.core.places import (
    Place,
    PlaceCategory,
    extract_tier,
    filter_feature_layers,
    hiragana_to_katakana,
    load_features,
    load_places,
)
from py_placenet.core.sources import PointFeature, point_features_from_geojson
from py_placenet.core.tiles import TileXYZ
from py_placenet.core.xorshift_prng import XorShiftPRNG

TILES = [TileXYZ(0, 0, 0)]


def feature(name, lat, lng):
    return PointFeature(Coordinates(lat, lng), name)


def grid_features(prefix, cells):
    """One feature in the middle of each (row, column) cell of a unit mesh."""
    return [feature(f"{prefix}{i}", row + 0.5, col + 0.5) for i, (row, col) in enumerate(cells)]


class FakeSource:
    """In-memory feature source keyed by url."""

    def __init__(self, data, delays=None, failing=()):
        self.data = data
        self.delays = delays or {}
        self.failing = set(failing)
        self.calls = []

    async def __call__(self, url, bbox):
        self.calls.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        if url in self.failing:
            raise IOError(f"cannot read {url}")
        return list(self.data.get(url, []))


class TestPlace:
    """Test place data structure."""

    def test_identity_is_derived(self):
        """Test the id combines name and canonical coordinates."""
        place = Place(Coordinates(43.06417, 141.34694), "さっぽろ", PlaceCategory.CITY, 0.0)
        again = Place(Coordinates(43.0641, 141.3469), "さっぽろ", PlaceCategory.TOWN, 0.5)

        assert place.id == "さっぽろ(43.064, 141.347)"
        assert place.id == again.id

    def test_display_name(self):
        """Test katakana transliteration and category suffix."""
        city = Place(Coordinates(0, 0), "さっぽろ", PlaceCategory.CITY, 0.0)
        town = Place(Coordinates(0, 0), "おたる", PlaceCategory.TOWN, 0.0)
        dummy = Place(Coordinates(0, 0), "Nayoro", PlaceCategory.DUMMY, 0.0)

        assert city.name_display == "サッポロシティ"
        assert town.name_display == "オタルタウン"
        assert dummy.name_display == "Nayoroタウン"

    def test_hiragana_to_katakana_keeps_other_text(self):
        """Test that kanji and latin text pass through."""
        assert hiragana_to_katakana("札幌 abc あ") == "札幌 abc ア"

    def test_name_hash(self):
        """Test the 32-bit string hash."""
        place = Place(Coordinates(0, 0), "ab", PlaceCategory.CITY, 0.0)
        assert place.name_hash() == 97 * 31 + 98

    def test_point_features_from_geojson(self):
        """Test GeoJSON positions are read as [lng, lat]."""
        features = point_features_from_geojson(
            [
                {"geometry": {"coordinates": [141.3, 43.0]}, "properties": {"name": "A"}},
                {"geometry": {"coordinates": [140.0, 42.0]}, "properties": {}},
            ]
        )
        assert features == [feature("A", 43.0, 141.3)]


class TestFilterFeatureLayers:
    """Test deduplication of ordered layers."""

    def setup_method(self):
        """Setup test fixtures."""
        self.mesh = Mesh(Bounds.from_wsen(0, 0, 10, 10), 10, 10)

    def test_duplicate_names_first_layer_wins(self):
        """Test that a name seen in an earlier layer is dropped later."""
        layers = [
            [feature("A", 1.5, 1.5)],
            [feature("A", 5.5, 5.5), feature("B", 7.5, 7.5)],
        ]
        result = filter_feature_layers(layers, self.mesh, 0.0)

        assert result == [[feature("A", 1.5, 1.5)], [feature("B", 7.5, 7.5)]]

    def test_shared_mesh_cell(self):
        """Test that a second feature in a taken cell is dropped."""
        layers = [[feature("A", 1.2, 1.2), feature("B", 1.8, 1.8)]]
        result = filter_feature_layers(layers, self.mesh, 0.0)

        assert result == [[feature("A", 1.2, 1.2)]]

    def test_off_mesh(self):
        """Test that features outside the mesh are dropped."""
        layers = [[feature("A", 11.0, 1.0), feature("B", 2.5, 2.5)]]
        result = filter_feature_layers(layers, self.mesh, 0.0)

        assert result == [[feature("B", 2.5, 2.5)]]

    def test_margin(self):
        """Test features too close on both axes are dropped."""
        layers = [[
            feature("A", 1.9, 1.2),
            feature("B", 2.1, 1.3),  # next cell, but within half a cell
            feature("C", 2.1, 3.5),  # far in longitude
        ]]
        result = filter_feature_layers(layers, self.mesh, 0.5)

        assert [f.name for f in result[0]] == ["A", "C"]

    def test_existing_coordinates_and_cells(self):
        """Test exclusions carried from earlier passes."""
        layers = [[feature("A", 1.5, 1.5), feature("B", 4.1, 4.1), feature("C", 8.5, 8.5)]]
        result = filter_feature_layers(
            layers,
            self.mesh,
            0.5,
            existing_coordinates=[Coordinates(3.9, 3.9)],
            existing_mesh_ids={self.mesh.mesh_id(Coordinates(1.1, 1.1))},
        )

        assert [f.name for f in result[0]] == ["C"]

    def test_zero_margin_keeps_neighbours(self):
        """Test that a zero margin only enforces cell uniqueness."""
        layers = [[feature("A", 1.99, 1.99), feature("B", 2.01, 2.01)]]
        result = filter_feature_layers(layers, self.mesh, 0.0)

        assert len(result[0]) == 2


class TestLoadFeatures:
    """Test concurrent feature loading."""

    def setup_method(self):
        """Setup test fixtures."""
        self.mesh = Mesh(Bounds.from_wsen(0, 0, 10, 10), 10, 10)

    @pytest.mark.asyncio
    async def test_order_restored_after_concurrent_reads(self):
        """Test that a slow trusted source still wins name conflicts."""
        source = FakeSource(
            {
                "first": [feature("A", 1.5, 1.5)],
                "second": [feature("A", 5.5, 5.5), feature("B", 6.5, 6.5)],
            },
            delays={"first": 0.05},
        )
        layers = await load_features(["first", "second"], TILES, self.mesh, 0.0, source)

        assert layers == [[feature("A", 1.5, 1.5)], [feature("B", 6.5, 6.5)]]

    @pytest.mark.asyncio
    async def test_failure_degrades_to_empty(self):
        """Test that a failing source yields an empty layer."""
        source = FakeSource(
            {"bad": [feature("X", 3.5, 3.5)], "good": [feature("A", 1.5, 1.5)]},
            failing={"bad"},
        )
        layers = await load_features(["bad", "good"], TILES, self.mesh, 0.0, source)

        assert layers == [[], [feature("A", 1.5, 1.5)]]

    @pytest.mark.asyncio
    async def test_reads_every_tile(self):
        """Test one read per (url, tile) pair."""
        source = FakeSource({"a": [feature("A", 1.5, 1.5)]})
        tiles = [TileXYZ(0, 0, 1), TileXYZ(1, 0, 1)]
        layers = await load_features(["a", "b"], tiles, self.mesh, 0.0, source)

        assert sorted(source.calls) == ["a", "a", "b", "b"]
        # the same feature from two tiles is kept once
        assert layers == [[feature("A", 1.5, 1.5)], []]

    @pytest.mark.asyncio
    async def test_existing_names_excluded(self):
        """Test names committed by earlier passes are skipped."""
        source = FakeSource({"a": [feature("A", 1.5, 1.5), feature("B", 2.5, 2.5)]})
        layers = await load_features(
            ["a"], TILES, self.mesh, 0.0, source, existing_names={"A"}
        )

        assert layers == [[feature("B", 2.5, 2.5)]]


class TestExtractTier:
    """Test drawing a tier from the pool."""

    def test_without_replacement(self):
        """Test that drawn features leave the pool."""
        pool = grid_features("P", [(0, i) for i in range(6)])
        tier, rest = extract_tier(pool, 2, XorShiftPRNG(11))

        assert len(tier) == 2
        assert len(rest) == 4
        assert sorted(f.name for f in tier + rest) == sorted(f.name for f in pool)

    def test_rest_keeps_pool_order(self):
        """Test the remaining pool keeps its original order."""
        pool = grid_features("P", [(0, i) for i in range(6)])
        _, rest = extract_tier(pool, 3, XorShiftPRNG(3))

        indices = [pool.index(f) for f in rest]
        assert indices == sorted(indices)

    def test_more_than_pool(self):
        """Test asking for more than available takes everything."""
        pool = grid_features("P", [(0, 0), (0, 1)])
        tier, rest = extract_tier(pool, 5, XorShiftPRNG(1))

        assert len(tier) == 2
        assert rest == []


class TestLoadPlaces:
    """Test the tiered selection loop."""

    def setup_method(self):
        """Setup test fixtures."""
        self.mesh = Mesh(Bounds.from_wsen(0, 0, 10, 10), 10, 10)

    def options(self, **kwargs):
        defaults = dict(extract_margin_scale=1.0, feature_margin01=0.0, zoom_level_detailed=10)
        defaults.update(kwargs)
        return GenerationOptions(**defaults)

    @pytest.mark.asyncio
    async def test_single_city(self):
        """Test one city drawn from three features, others left unselected."""
        source = FakeSource({"a": grid_features("F", [(1, 1), (4, 4), (7, 7)])})
        options = self.options(num_c=1, num_t=0, num_d=0)

        places = await load_places(TILES, options, self.mesh, 12, [["a"]], source)

        assert len(places) == 1
        assert places[0].category == PlaceCategory.CITY
        assert places[0].position == 0.0
        assert places[0].name in {"F0", "F1", "F2"}

    @pytest.mark.asyncio
    async def test_three_tiers(self):
        """Test cities, towns and dummies are drawn in order."""
        cells = [(r, c) for r in range(0, 10, 3) for c in range(0, 10, 3)][:8]
        source = FakeSource({"a": grid_features("F", cells)})
        options = self.options(num_c=2, num_t=2, num_d=2)

        places = await load_places(TILES, options, self.mesh, 12, [["a"]], source)

        assert [p.category for p in places] == (
            [PlaceCategory.CITY] * 2 + [PlaceCategory.TOWN] * 2 + [PlaceCategory.DUMMY] * 2
        )
        assert [p.position for p in places] == [0.0, 0.5] * 3
        assert len({p.name for p in places}) == 6

    @pytest.mark.asyncio
    async def test_detailed_group_needs_zoom(self):
        """Test the third group is skipped below the detailed zoom."""
        source = FakeSource(
            {
                "a": grid_features("A", [(0, 0), (0, 2)]),
                "b": grid_features("B", [(2, 0)]),
                "c": grid_features("C", [(5, 0), (5, 2), (5, 4), (5, 6), (5, 8)]),
            }
        )
        options = self.options(num_c=1, num_t=1, num_d=5)

        places = await load_places(TILES, options, self.mesh, 5, [["a"], ["b"], ["c"]], source)

        assert "c" not in source.calls
        assert len(places) == 2

    @pytest.mark.asyncio
    async def test_detailed_group_at_high_zoom(self):
        """Test the third group fills dummies at detailed zoom."""
        source = FakeSource(
            {
                "a": grid_features("A", [(0, 0), (0, 2)]),
                "b": grid_features("B", [(2, 0)]),
                "c": grid_features("C", [(5, 0), (5, 2), (5, 4), (5, 6), (5, 8)]),
            }
        )
        options = self.options(num_c=1, num_t=1, num_d=5)

        places = await load_places(TILES, options, self.mesh, 12, [["a"], ["b"], ["c"]], source)

        assert "c" in source.calls
        assert sum(p.category == PlaceCategory.DUMMY for p in places) == 5
        assert len(places) == 7

    @pytest.mark.asyncio
    async def test_stops_once_dummies_filled(self):
        """Test later groups are not read after the last tier is drawn."""
        source = FakeSource(
            {
                "a": grid_features("A", [(0, i) for i in range(6)]),
                "b": grid_features("B", [(5, 5)]),
            }
        )
        options = self.options(num_c=2, num_t=2, num_d=2)

        await load_places(TILES, options, self.mesh, 12, [["a"], ["b"]], source)

        assert "b" not in source.calls

    @pytest.mark.asyncio
    async def test_town_backfill(self):
        """Test towns are taken from cities when none could be drawn."""
        source = FakeSource({"a": grid_features("A", [(0, i) for i in range(5)])})
        options = self.options(num_c=4, num_t=3, num_d=0)

        places = await load_places(TILES, options, self.mesh, 12, [["a"]], source)

        cities = [p for p in places if p.category == PlaceCategory.CITY]
        towns = [p for p in places if p.category == PlaceCategory.TOWN]
        assert len(cities) == 2
        assert len(towns) == 2
        assert [t.position for t in towns] == [0.0, pytest.approx(1 / 3)]

    @pytest.mark.asyncio
    async def test_backfill_beyond_town_target(self):
        """Test backfilled town positions stay below 1 when they exceed the target."""
        source = FakeSource({"a": grid_features("A", [(0, i) for i in range(5)])})
        options = self.options(num_c=5, num_t=1, num_d=0)

        places = await load_places(TILES, options, self.mesh, 12, [["a"]], source)

        towns = [p for p in places if p.category == PlaceCategory.TOWN]
        assert [t.position for t in towns] == [0.0, 0.5]
        assert all(0 <= p.position < 1 for p in places)

    @pytest.mark.asyncio
    async def test_uniqueness_across_groups(self):
        """Test no two places share a name or a mesh cell."""
        source = FakeSource(
            {
                "a": grid_features("A", [(0, 0), (0, 3)]),
                "b": [feature("A0", 8.5, 8.5), feature("B0", 0.6, 0.6), feature("B1", 6.5, 6.5)],
                "c": grid_features("C", [(9, 0), (9, 3), (3, 9)]),
            }
        )
        options = self.options(num_c=2, num_t=2, num_d=2)

        places = await load_places(TILES, options, self.mesh, 12, [["a"], ["b"], ["c"]], source)

        names = [p.name for p in places]
        cells = [self.mesh.mesh_id(p.coordinates) for p in places]
        assert len(names) == len(set(names))
        assert len(cells) == len(set(cells))
        assert "B0" not in names

    @pytest.mark.asyncio
    async def test_margin_between_places(self):
        """Test pairwise clearance of selected places."""
        cells = [(r, c) for r in range(10) for c in range(10)]
        source = FakeSource({"a": grid_features("F", cells)})
        options = self.options(num_c=3, num_t=3, num_d=3, feature_margin01=1.0)

        places = await load_places(TILES, options, self.mesh, 12, [["a"]], source)

        margin = self.mesh.mesh_normal_lng() * options.feature_margin01
        for i, a in enumerate(places):
            for b in places[i + 1:]:
                close_lng = abs(a.coordinates.lng - b.coordinates.lng) < margin
                close_lat = abs(a.coordinates.lat - b.coordinates.lat) < margin
                assert not (close_lng and close_lat)

    @pytest.mark.asyncio
    async def test_reproducible(self):
        """Test the same inputs select the same places."""
        cells = [(r, c) for r in range(0, 10, 2) for c in range(0, 10, 2)]
        options = self.options(num_c=3, num_t=4, num_d=5)

        first = await load_places(
            TILES, options, self.mesh, 12, [["a"]], FakeSource({"a": grid_features("F", cells)})
        )
        second = await load_places(
            TILES, options, self.mesh, 12, [["a"]], FakeSource({"a": grid_features("F", cells)})
        )

        assert [p.id for p in first] == [p.id for p in second]
        assert first == second

    @pytest.mark.asyncio
    async def test_no_features(self):
        """Test an empty region yields no places."""
        source = FakeSource({})
        places = await load_places(
            TILES, self.options(), self.mesh, 12, [["a"], ["b"], ["c"]], source
        )

        assert places == []
