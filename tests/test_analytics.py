"""Tests for heatmap density and proximity clustering."""

import math
import random

import pytest

from app.core.analytics import Bounds, SpatialAggregator, generate_grid
from app.core.exceptions import InvalidGeometry
from app.core.types import Position

UNIT = Bounds(north=1, south=0, east=1, west=0)


@pytest.fixture
def aggregator():
    return SpatialAggregator(grid_size=10, heatmap_radius=0.01, epsilon=0.001, cluster_radius=0.001)


@pytest.fixture
def located(make_state):
    def _located(*coords):
        return [
            make_state(f"T-{i}", positions=[Position(latitude=lat, longitude=lon)])
            for i, (lat, lon) in enumerate(coords)
        ]
    return _located


def sweep_clusters(tourists, threshold):
    """Quadratic reference: greedy clustering over the whole list."""
    visited = set()
    groups = []
    for i, seed in enumerate(tourists):
        if i in visited:
            continue
        visited.add(i)
        group = [seed.id]
        for j in range(i + 1, len(tourists)):
            if j in visited:
                continue
            other = tourists[j]
            d = math.hypot(
                seed.current_position.latitude - other.current_position.latitude,
                seed.current_position.longitude - other.current_position.longitude,
            )
            if d < threshold:
                group.append(other.id)
                visited.add(j)
        if len(group) >= 2:
            groups.append(group)
    return groups


class TestBounds:
    def test_parse(self):
        bounds = Bounds.parse("40.8,40.7,-73.9,-74.0")
        assert bounds.north == 40.8
        assert bounds.west == -74.0

    @pytest.mark.parametrize("value", ["1,2,3", "a,b,c,d", "0,1,1,0", "1,0,0,1", "100,0,1,0"])
    def test_parse_rejects(self, value):
        with pytest.raises(InvalidGeometry):
            Bounds.parse(value)

    def test_contains(self):
        assert UNIT.contains(Position(latitude=0.5, longitude=0.5))
        assert not UNIT.contains(Position(latitude=1.5, longitude=0.5))


class TestHeatmap:
    def test_grid_size(self):
        assert len(generate_grid(UNIT, 10)) == 121

    def test_point_on_lattice(self, aggregator):
        cells = aggregator.heatmap(UNIT, [Position(latitude=0.5, longitude=0.5)])
        assert len(cells) == 1
        assert (cells[0].row, cells[0].col) == (5, 5)
        assert cells[0].weight == pytest.approx(1000)

    def test_point_far_from_lattice(self, aggregator):
        assert aggregator.heatmap(UNIT, [Position(latitude=0.55, longitude=0.55)]) == []

    def test_weights_accumulate(self, aggregator):
        p = Position(latitude=0.5, longitude=0.5)
        cells = aggregator.heatmap(UNIT, [p, p, p])
        assert cells[0].weight == pytest.approx(3000)

    def test_empty(self, aggregator):
        assert aggregator.heatmap(UNIT, []) == []

    def test_explicit_zero_grid_size_rejected(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.heatmap(UNIT, [Position(latitude=0.5, longitude=0.5)], grid_size=0)


class TestClusters:
    def test_two_clusters_and_singleton(self, aggregator, located):
        tourists = located((0, 0), (0, 0.0005), (1, 1), (1, 1.0005), (5, 5))
        clusters = aggregator.clusters(tourists)
        assert [c.count for c in clusters] == [2, 2]
        assert clusters[0].center == pytest.approx((0, 0.00025))
        assert clusters[1].center == pytest.approx((1, 1.00025))

    def test_order_dependent(self, aggregator, located):
        a, b, c = located((0, 0), (0, 0.0008), (0, 0.0016))

        forward = aggregator.clusters([a, b, c])
        assert [[m.id for m in cl.members] for cl in forward] == [[a.id, b.id]]

        middle_first = aggregator.clusters([b, a, c])
        assert [[m.id for m in cl.members] for cl in middle_first] == [[b.id, a.id, c.id]]

    def test_deterministic(self, aggregator, located):
        tourists = located((0, 0), (0, 0.0005), (0.0004, 0.0002), (2, 2))
        first = [[m.id for m in c.members] for c in aggregator.clusters(tourists)]
        second = [[m.id for m in c.members] for c in aggregator.clusters(tourists)]
        assert first == second

    def test_matches_full_sweep(self, aggregator, located):
        rng = random.Random(42)
        coords = [(rng.uniform(0, 0.01), rng.uniform(0, 0.01)) for _ in range(300)]
        tourists = located(*coords)
        bucketed = [[m.id for m in c.members] for c in aggregator.clusters(tourists)]
        assert bucketed == sweep_clusters(tourists, 0.001)

    def test_skips_tourists_without_position(self, aggregator, located, make_state):
        tourists = located((0, 0), (0, 0.0005)) + [make_state("T-none")]
        clusters = aggregator.clusters(tourists)
        assert len(clusters) == 1
        assert "T-none" not in [m.id for m in clusters[0].members]

    def test_explicit_zero_threshold(self, aggregator, located):
        tourists = located((0, 0), (0, 0))
        assert aggregator.clusters(tourists, threshold=0) == []
        assert len(aggregator.clusters(tourists)) == 1

    def test_explicit_zero_settings_kept(self):
        aggregator = SpatialAggregator(grid_size=0, cluster_radius=0)
        assert aggregator.grid_size == 0
        assert aggregator.cluster_radius == 0


class TestDashboardView:
    def test_statistics(self, aggregator, located):
        tourists = located((0.5, 0.5), (0.5, 0.5005), (5, 5))
        view = aggregator.dashboard_view(UNIT, tourists)
        assert view["statistics"]["total_tourists"] == 2
        assert view["statistics"]["average_density"] == pytest.approx(2.0)
        assert len(view["tourist_clusters"]) == 1
        assert view["tourist_clusters"][0]["count"] == 2
        assert view["heatmap_data"]
        assert view["bounds"] == UNIT.to_dict()
