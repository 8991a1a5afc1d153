"""
Domain types shared by the safety core: positions, tourist state,
geofence zones and anomaly records.
"""

import copy
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

from app.core.exceptions import InvalidGeometry
from app.core.geometry import validate_coordinates, validate_polygon


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TouristStatus(str, Enum):
    SAFE = "safe"
    AT_RISK = "at-risk"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    TouristStatus.SAFE: 0,
    TouristStatus.AT_RISK: 1,
    TouristStatus.EMERGENCY: 2,
}


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnomalyType(str, Enum):
    ROUTE_DEVIATION = "route_deviation"
    INACTIVITY = "inactivity"
    SPEED_ANOMALY = "speed_anomaly"
    VITALS_ANOMALY = "vitals_anomaly"
    DEVICE_CONNECTIVITY = "device_connectivity"
    BEHAVIOR_PATTERN = "behavior_pattern"
    LEARNED_PATTERN = "learned_pattern"


@dataclass(frozen=True)
class Position:
    """Immutable location fix"""
    latitude: float
    longitude: float
    timestamp: datetime = field(default_factory=utcnow)
    accuracy: Optional[float] = None  # meters

    def __post_init__(self):
        validate_coordinates(self.latitude, self.longitude)
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
            "accuracy": self.accuracy,
        }


@dataclass
class Vitals:
    heart_rate: Optional[float] = None
    battery_level: Optional[float] = None
    last_sync_at: Optional[datetime] = None
    device_id: Optional[str] = None

    def __post_init__(self):
        self.last_sync_at = ensure_utc(self.last_sync_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "heart_rate": self.heart_rate,
            "battery_level": self.battery_level,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "device_id": self.device_id,
        }


# A planned itinerary: either parsed positions or the raw JSON string the
# itinerary collaborator stores.
ExpectedRoute = Union[Tuple[Position, ...], str]


@dataclass
class TouristState:
    """Live safety state for one tourist"""
    id: str
    history_limit: int = 100
    current_position: Optional[Position] = None
    position_history: Deque[Position] = field(default_factory=deque)
    last_activity_at: datetime = field(default_factory=utcnow)
    expected_route: Optional[ExpectedRoute] = None
    vitals: Optional[Vitals] = None
    risk_score: float = 0.0
    status: TouristStatus = TouristStatus.SAFE
    incident_count_24h: int = 0
    incident_types_24h: List[str] = field(default_factory=list)
    registered_at: datetime = field(default_factory=utcnow)
    family_tracking_enabled: bool = False
    emergency_dispatched: bool = False

    def __post_init__(self):
        if self.history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.last_activity_at = ensure_utc(self.last_activity_at)
        self.registered_at = ensure_utc(self.registered_at)
        # Ring buffer: oldest fix evicted once the limit is reached
        self.position_history = deque(self.position_history, maxlen=self.history_limit)

    def record_position(self, position: Position) -> None:
        self.current_position = position
        self.position_history.append(position)
        self.touch(position.timestamp)

    def touch(self, at: Optional[datetime] = None) -> None:
        at = ensure_utc(at) or utcnow()
        if at > self.last_activity_at:
            self.last_activity_at = at

    def snapshot(self) -> "TouristState":
        """Independent copy; mutating the live state never affects it"""
        clone = copy.copy(self)
        clone.position_history = deque(self.position_history, maxlen=self.history_limit)
        clone.vitals = copy.copy(self.vitals)
        clone.incident_types_24h = list(self.incident_types_24h)
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "current_position": self.current_position.to_dict() if self.current_position else None,
            "history_length": len(self.position_history),
            "last_activity_at": self.last_activity_at.isoformat(),
            "vitals": self.vitals.to_dict() if self.vitals else None,
            "risk_score": round(self.risk_score, 4),
            "status": self.status.value,
            "incident_count_24h": self.incident_count_24h,
        }


@dataclass(frozen=True)
class CircleBoundary:
    center: Tuple[float, float]  # (lat, lon)
    radius_m: float

    def __post_init__(self):
        validate_coordinates(*self.center)
        if self.radius_m is None or self.radius_m < 0:
            raise InvalidGeometry("Circle radius must be a non-negative number of meters")


@dataclass(frozen=True)
class PolygonBoundary:
    vertices: Tuple[Tuple[float, float], ...]  # (lat, lon), implicitly closed

    def __post_init__(self):
        ring = validate_polygon(self.vertices)
        object.__setattr__(self, "vertices", tuple(ring))


Boundary = Union[CircleBoundary, PolygonBoundary]


@dataclass(frozen=True)
class AlertConfig:
    trigger_on_entry: bool = False
    max_capacity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"trigger_on_entry": self.trigger_on_entry, "max_capacity": self.max_capacity}


@dataclass(frozen=True)
class GeofenceZone:
    id: str
    name: str
    risk_level: RiskLevel
    boundary: Boundary
    alert_config: AlertConfig = field(default_factory=AlertConfig)
    is_active: bool = True
    zone_type: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ZoneMatch:
    zone_id: str
    name: str
    risk_level: RiskLevel
    alert_config: AlertConfig
    alert_triggering: bool = False
    capacity_exceeded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "name": self.name,
            "risk_level": self.risk_level.value,
            "alert_config": self.alert_config.to_dict(),
            "alert_triggering": self.alert_triggering,
            "capacity_exceeded": self.capacity_exceeded,
        }


@dataclass
class AnomalyRecord:
    tourist_id: str
    type: AnomalyType
    severity: Severity
    risk_score: float
    details: Dict[str, Any]
    timestamp: datetime
    description: str

    def __post_init__(self):
        self.risk_score = max(0.0, min(1.0, self.risk_score))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tourist_id": self.tourist_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "risk_score": round(self.risk_score, 4),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "description": self.description,
        }


@dataclass(frozen=True)
class DetectorFailed:
    type: AnomalyType
    tourist_id: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "tourist_id": self.tourist_id, "error": self.error}
