import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from app.core.geometry import point_in_circle, point_in_polygon, validate_coordinates
from app.core.types import (
    CircleBoundary,
    GeofenceZone,
    PolygonBoundary,
    Position,
    RiskLevel,
    ZoneMatch,
    utcnow,
)

logger = logging.getLogger(__name__)

ALERT_RISK_LEVELS = {RiskLevel.HIGH, RiskLevel.VERY_HIGH}


@dataclass
class OccupancyCounter:
    """Approximate live occupancy for one zone"""
    count: int = 0
    last_updated: Optional[datetime] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, at: datetime) -> int:
        with self._lock:
            self.count += 1
            self.last_updated = at
            return self.count

    def decrement(self, at: datetime) -> int:
        with self._lock:
            self.count = max(0, self.count - 1)
            self.last_updated = at
            return self.count

    def set(self, count: int, at: datetime) -> None:
        with self._lock:
            self.count = count
            self.last_updated = at

    def read(self) -> Tuple[int, Optional[datetime]]:
        with self._lock:
            return self.count, self.last_updated

    def to_dict(self) -> Dict[str, Any]:
        count, last_updated = self.read()
        return {
            "count": count,
            "last_updated": last_updated.isoformat() if last_updated else None,
        }


def zone_contains(zone: GeofenceZone, position: Any) -> bool:
    """Dispatch on boundary variant to the matching containment test"""
    boundary = zone.boundary
    if isinstance(boundary, CircleBoundary):
        return point_in_circle(position, boundary.center, boundary.radius_m)
    if isinstance(boundary, PolygonBoundary):
        return point_in_polygon(position, boundary.vertices)
    raise TypeError(f"Unsupported boundary type for zone {zone.id}: {type(boundary).__name__}")


class GeofenceEngine:
    """
    Zone registry and containment evaluation.

    The registry is an immutable tuple swapped in whole by load_zones, so an
    evaluation always runs against one consistent snapshot even while the
    authority collaborator replaces zone definitions.
    """

    def __init__(self, zones: Optional[Iterable[GeofenceZone]] = None):
        self._zones: Tuple[GeofenceZone, ...] = ()
        self._counters: Dict[str, OccupancyCounter] = {}
        self._memberships: Dict[str, Set[str]] = {}
        self._registry_lock = threading.Lock()
        self._membership_lock = threading.Lock()
        if zones is not None:
            self.load_zones(zones)

    @property
    def zones(self) -> Tuple[GeofenceZone, ...]:
        return self._zones

    def get_zone(self, zone_id: str) -> Optional[GeofenceZone]:
        return next((z for z in self._zones if z.id == zone_id), None)

    def load_zones(self, zones: Iterable[GeofenceZone]) -> None:
        """Replace the zone snapshot; counters survive for zone ids still present"""
        snapshot = tuple(zones)
        ids = [z.id for z in snapshot]
        if len(set(ids)) != len(ids):
            raise ValueError("Zone ids must be unique")

        with self._registry_lock:
            counters = {zid: self._counters.get(zid) or OccupancyCounter() for zid in ids}
            self._counters = counters
            self._zones = snapshot

        live = set(ids)
        with self._membership_lock:
            for tourist_id, zone_ids in self._memberships.items():
                zone_ids &= live

        logger.info(f"Loaded {len(snapshot)} geofence zones")

    def _counter(self, zone_id: str) -> OccupancyCounter:
        counter = self._counters.get(zone_id)
        if counter is None:
            with self._registry_lock:
                counter = self._counters.setdefault(zone_id, OccupancyCounter())
        return counter

    def evaluate(self, position: Position, tourist_id: Optional[str] = None) -> List[ZoneMatch]:
        """
        Return every active zone containing the position and update occupancy.

        Without a tourist id each match counts as one entry. With one, the
        engine remembers which zones that tourist is inside, counting only
        entries and decrementing on exit.
        """
        validate_coordinates(position.latitude, position.longitude)
        zones = self._zones
        now = utcnow()

        inside: List[GeofenceZone] = [
            zone for zone in zones
            if zone.is_active and zone_contains(zone, position)
        ]
        inside_ids = {zone.id for zone in inside}

        if tourist_id is None:
            entered = inside_ids
        else:
            with self._membership_lock:
                previous = self._memberships.get(tourist_id, set())
                entered = inside_ids - previous
                exited = previous - inside_ids
                self._memberships[tourist_id] = set(inside_ids)
            for zone_id in exited:
                self._counter(zone_id).decrement(now)
                logger.debug(f"Tourist {tourist_id} left zone {zone_id}")

        matches = []
        for zone in inside:
            counter = self._counter(zone.id)
            if zone.id in entered:
                count = counter.increment(now)
            else:
                count, _ = counter.read()
            matches.append(self._build_match(zone, count))

        return matches

    def _build_match(self, zone: GeofenceZone, count: int) -> ZoneMatch:
        max_capacity = zone.alert_config.max_capacity
        capacity_exceeded = max_capacity is not None and count > max_capacity
        alert_triggering = (
            zone.alert_config.trigger_on_entry
            or zone.risk_level in ALERT_RISK_LEVELS
            or capacity_exceeded
        )
        if capacity_exceeded:
            logger.warning(f"Zone {zone.id} over capacity: {count}/{max_capacity}")
        return ZoneMatch(
            zone_id=zone.id,
            name=zone.name,
            risk_level=zone.risk_level,
            alert_config=zone.alert_config,
            alert_triggering=alert_triggering,
            capacity_exceeded=capacity_exceeded,
        )

    @staticmethod
    def alerts(matches: Iterable[ZoneMatch]) -> List[ZoneMatch]:
        return [m for m in matches if m.alert_triggering]

    def occupancy(self, zone_id: str) -> int:
        counter = self._counters.get(zone_id)
        return counter.read()[0] if counter else 0

    def occupancy_snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {zone_id: counter.to_dict() for zone_id, counter in self._counters.items()}

    def reset_occupancy(self, zone_id: Optional[str] = None) -> None:
        now = utcnow()
        with self._membership_lock:
            if zone_id is None:
                self._memberships.clear()
            else:
                for zone_ids in self._memberships.values():
                    zone_ids.discard(zone_id)
        targets = self._counters.values() if zone_id is None else [self._counter(zone_id)]
        for counter in targets:
            counter.set(0, now)

    def recompute_occupancy(self, positions: Mapping[str, Position]) -> Dict[str, int]:
        """
        Rebuild counts and memberships from scratch out of a snapshot of
        current positions keyed by tourist id
        """
        zones = self._zones
        now = utcnow()
        memberships: Dict[str, Set[str]] = {}
        counts = {zone.id: 0 for zone in zones}

        for tourist_id, position in positions.items():
            inside = {
                zone.id for zone in zones
                if zone.is_active and zone_contains(zone, position)
            }
            memberships[tourist_id] = inside
            for zone_id in inside:
                counts[zone_id] += 1

        with self._membership_lock:
            self._memberships = memberships
        for zone_id, count in counts.items():
            self._counter(zone_id).set(count, now)

        logger.info(f"Recomputed occupancy for {len(zones)} zones from {len(positions)} positions")
        return counts

    def zone_statistics(self, zone_id: str) -> Optional[Dict[str, Any]]:
        zone = self.get_zone(zone_id)
        if zone is None:
            return None
        count, last_updated = self._counter(zone_id).read()
        return {
            "zone_id": zone.id,
            "name": zone.name,
            "type": zone.zone_type,
            "risk_level": zone.risk_level.value,
            "is_active": zone.is_active,
            "current_tourists": count,
            "last_updated": last_updated.isoformat() if last_updated else None,
            "capacity": zone.alert_config.max_capacity or "unlimited",
        }
