import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.config import settings
from app.core.exceptions import InvalidGeometry
from app.core.geometry import validate_coordinates
from app.core.types import Position, TouristState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self):
        validate_coordinates(self.north, self.east)
        validate_coordinates(self.south, self.west)
        if self.north <= self.south:
            raise InvalidGeometry("Bounds north must be greater than south")
        if self.east <= self.west:
            raise InvalidGeometry("Bounds east must be greater than west")

    @classmethod
    def parse(cls, value: str) -> "Bounds":
        """Parse a "north,south,east,west" query string"""
        try:
            north, south, east, west = (float(part) for part in value.split(","))
        except ValueError:
            raise InvalidGeometry("Bounds must be four numbers: north,south,east,west")
        return cls(north=north, south=south, east=east, west=west)

    def contains(self, position: Position) -> bool:
        return (self.south <= position.latitude <= self.north
                and self.west <= position.longitude <= self.east)

    @property
    def area(self) -> float:
        return (self.north - self.south) * (self.east - self.west)

    def to_dict(self) -> Dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


@dataclass
class HeatmapCell:
    row: int
    col: int
    lat: float
    lon: float
    weight: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "col": self.col,
            "lat": self.lat,
            "lon": self.lon,
            "weight": round(self.weight, 4),
        }


@dataclass
class TouristCluster:
    """Group of nearby tourists rendered as one map marker"""
    members: List[TouristState] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.members)

    @property
    def center(self) -> Tuple[float, float]:
        lat = sum(m.current_position.latitude for m in self.members) / len(self.members)
        lon = sum(m.current_position.longitude for m in self.members) / len(self.members)
        return lat, lon

    def to_dict(self) -> Dict[str, Any]:
        lat, lon = self.center
        return {
            "center": {"latitude": lat, "longitude": lon},
            "count": self.count,
            "tourists": [
                {"id": m.id, "status": m.status.value}
                for m in self.members
            ],
        }


def generate_grid(bounds: Bounds, grid_size: int) -> List[HeatmapCell]:
    """Uniform lattice of (grid_size + 1)^2 points spanning the bounding box"""
    if grid_size < 1:
        raise ValueError("grid_size must be at least 1")
    lat_step = (bounds.north - bounds.south) / grid_size
    lon_step = (bounds.east - bounds.west) / grid_size
    return [
        HeatmapCell(row=i, col=j, lat=bounds.south + i * lat_step, lon=bounds.west + j * lon_step)
        for i in range(grid_size + 1)
        for j in range(grid_size + 1)
    ]


class SpatialAggregator:
    """
    Heatmap density and proximity clustering for the operator map.

    Distances here are euclidean in raw degrees, not meters: 0.01 is roughly
    1km and 0.001 roughly 100m near the equator and shrink in longitude
    toward the poles.
    """

    def __init__(
        self,
        grid_size: Optional[int] = None,
        heatmap_radius: Optional[float] = None,
        epsilon: Optional[float] = None,
        cluster_radius: Optional[float] = None,
    ):
        self.grid_size = settings.HEATMAP_GRID_SIZE if grid_size is None else grid_size
        self.heatmap_radius = settings.HEATMAP_RADIUS_DEG if heatmap_radius is None else heatmap_radius
        self.epsilon = settings.HEATMAP_EPSILON if epsilon is None else epsilon
        self.cluster_radius = settings.CLUSTER_RADIUS_DEG if cluster_radius is None else cluster_radius

    def heatmap(
        self,
        bounds: Bounds,
        positions: Iterable[Position],
        grid_size: Optional[int] = None,
    ) -> List[HeatmapCell]:
        """Inverse-distance weighted density; only cells with weight are returned"""
        grid = generate_grid(bounds, self.grid_size if grid_size is None else grid_size)

        for position in positions:
            for cell in grid:
                distance = math.hypot(position.latitude - cell.lat, position.longitude - cell.lon)
                if distance < self.heatmap_radius:
                    cell.weight += 1 / (distance + self.epsilon)

        return [cell for cell in grid if cell.weight > 0]

    def clusters(
        self,
        tourists: Sequence[TouristState],
        threshold: Optional[float] = None,
    ) -> List[TouristCluster]:
        """
        Greedy single-pass clustering in input order.

        Each unvisited tourist seeds a cluster and absorbs every later
        unvisited tourist closer than the threshold. Candidates come from the
        seed's grid bucket and its neighbours, visited in input order, so the
        result is the same as sweeping the whole list. Results depend on input
        order; only clusters with two or more members are returned.
        """
        if threshold is None:
            threshold = self.cluster_radius
        if threshold <= 0:
            return []
        located = [t for t in tourists if t.current_position is not None]

        buckets: Dict[Tuple[int, int], List[int]] = defaultdict(list)
        for index, tourist in enumerate(located):
            buckets[self._bucket(tourist.current_position, threshold)].append(index)

        visited = set()
        clusters = []

        for index, tourist in enumerate(located):
            if index in visited:
                continue
            visited.add(index)
            cluster = TouristCluster(members=[tourist])
            seed = tourist.current_position

            row, col = self._bucket(seed, threshold)
            candidates = sorted(
                other
                for dr in (-1, 0, 1)
                for dc in (-1, 0, 1)
                for other in buckets.get((row + dr, col + dc), ())
                if other not in visited
            )
            for other in candidates:
                position = located[other].current_position
                distance = math.hypot(seed.latitude - position.latitude, seed.longitude - position.longitude)
                if distance < threshold:
                    cluster.members.append(located[other])
                    visited.add(other)

            if cluster.count >= 2:
                clusters.append(cluster)

        return clusters

    @staticmethod
    def _bucket(position: Position, size: float) -> Tuple[int, int]:
        return math.floor(position.latitude / size), math.floor(position.longitude / size)

    def dashboard_view(
        self,
        bounds: Bounds,
        tourists: Sequence[TouristState],
        grid_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Heatmap, clusters and density statistics for tourists inside the bounds"""
        in_bounds = [
            t for t in tourists
            if t.current_position is not None and bounds.contains(t.current_position)
        ]
        cells = self.heatmap(bounds, [t.current_position for t in in_bounds], grid_size)
        clusters = self.clusters(in_bounds)

        logger.debug(f"Dashboard view: {len(in_bounds)} tourists, {len(cells)} cells, {len(clusters)} clusters")

        return {
            "bounds": bounds.to_dict(),
            "heatmap_data": [cell.to_dict() for cell in cells],
            "tourist_clusters": [cluster.to_dict() for cluster in clusters],
            "statistics": {
                "total_tourists": len(in_bounds),
                "average_density": len(in_bounds) / bounds.area,
            },
        }
