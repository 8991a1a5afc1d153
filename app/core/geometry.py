import math
from typing import Any, List, Sequence, Tuple

from app.core.exceptions import InvalidGeometry

EARTH_RADIUS_M = 6371000  # Earth's radius in meters

Coordinate = Tuple[float, float]


def _coords(point: Any) -> Coordinate:
    """Accept a Position-like object or a (lat, lon) pair"""
    if hasattr(point, "latitude") and hasattr(point, "longitude"):
        return point.latitude, point.longitude
    lat, lon = point
    return lat, lon


def validate_coordinates(latitude: float, longitude: float) -> None:
    """
    Raise InvalidGeometry unless latitude is in [-90, 90] and
    longitude is in [-180, 180]
    """
    if latitude is None or longitude is None:
        raise InvalidGeometry("Coordinates must not be empty")
    if math.isnan(latitude) or math.isnan(longitude):
        raise InvalidGeometry("Coordinates must be numbers")
    if not (-90 <= latitude <= 90):
        raise InvalidGeometry(f"Invalid latitude {latitude}: must be between -90 and 90")
    if not (-180 <= longitude <= 180):
        raise InvalidGeometry(f"Invalid longitude {longitude}: must be between -180 and 180")


def calculate_distance(p1: Any, p2: Any) -> float:
    """
    Calculate distance between two points using Haversine formula
    Returns distance in meters
    """
    lat1, lon1 = _coords(p1)
    lat2, lon2 = _coords(p2)

    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat/2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def calculate_bearing(p1: Any, p2: Any) -> float:
    """Initial bearing from p1 to p2 in degrees, normalized to [0, 360)"""
    lat1, lon1 = _coords(p1)
    lat2, lon2 = _coords(p2)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)

    return (math.degrees(math.atan2(y, x)) + 360) % 360


def point_in_circle(point: Any, center: Any, radius_m: float) -> bool:
    validate_coordinates(*_coords(point))
    validate_coordinates(*_coords(center))
    return calculate_distance(point, center) <= radius_m


def point_in_polygon(point: Any, vertices: Sequence[Any]) -> bool:
    """
    Ray casting algorithm to determine if point is inside polygon.
    Vertices are (lat, lon) pairs; the ring is implicitly closed.
    Raises InvalidGeometry for an out-of-range point or a ring with fewer
    than 3 distinct vertices.
    """
    lat, lon = _coords(point)
    validate_coordinates(lat, lon)
    ring = [_coords(v) for v in vertices]
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    if len(set(ring)) < 3:
        raise InvalidGeometry("Polygon needs at least 3 distinct vertices")
    n = len(ring)
    inside = False

    j = n - 1
    for i in range(n):
        lat_i, lon_i = ring[i]
        lat_j, lon_j = ring[j]
        if (lat_i > lat) != (lat_j > lat):
            lon_cross = (lon_j - lon_i) * (lat - lat_i) / (lat_j - lat_i) + lon_i
            if lon < lon_cross:
                inside = not inside
        j = i

    return inside


def _orientation(a: Coordinate, b: Coordinate, c: Coordinate) -> float:
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def _on_segment(a: Coordinate, b: Coordinate, c: Coordinate) -> bool:
    return (min(a[0], b[0]) <= c[0] <= max(a[0], b[0])
            and min(a[1], b[1]) <= c[1] <= max(a[1], b[1]))


def _segments_intersect(p1: Coordinate, p2: Coordinate, q1: Coordinate, q2: Coordinate) -> bool:
    d1 = _orientation(q1, q2, p1)
    d2 = _orientation(q1, q2, p2)
    d3 = _orientation(p1, p2, q1)
    d4 = _orientation(p1, p2, q2)

    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True

    if d1 == 0 and _on_segment(q1, q2, p1):
        return True
    if d2 == 0 and _on_segment(q1, q2, p2):
        return True
    if d3 == 0 and _on_segment(p1, p2, q1):
        return True
    if d4 == 0 and _on_segment(p1, p2, q2):
        return True
    return False


def validate_polygon(vertices: Sequence[Any]) -> List[Coordinate]:
    """
    Validate a polygon ring and return it as (lat, lon) pairs without a
    repeated closing vertex.

    Rejects rings with fewer than 3 distinct vertices, zero area, or
    self-intersecting edges; ray casting gives no meaningful containment
    for those.
    """
    ring = [_coords(v) for v in vertices]
    for lat, lon in ring:
        validate_coordinates(lat, lon)

    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]

    if len(set(ring)) < 3 or len(set(ring)) != len(ring):
        raise InvalidGeometry("Polygon needs at least 3 distinct vertices")

    area2 = sum(
        ring[i][0] * ring[(i + 1) % len(ring)][1] - ring[(i + 1) % len(ring)][0] * ring[i][1]
        for i in range(len(ring))
    )
    if area2 == 0:
        raise InvalidGeometry("Polygon has zero area")

    n = len(ring)
    edges = [(ring[i], ring[(i + 1) % n]) for i in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            # adjacent edges share a vertex
            if j == i + 1 or (i == 0 and j == n - 1):
                continue
            if _segments_intersect(edges[i][0], edges[i][1], edges[j][0], edges[j][1]):
                raise InvalidGeometry("Polygon ring is self-intersecting")

    return ring
