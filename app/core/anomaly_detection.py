"""
Multi-signal anomaly detection for tourist safety.

Every detector looks at one snapshot of a tourist's state and returns at most
one AnomalyRecord. Detectors are independent: a detector that raises is
reported as a DetectorFailed diagnostic and the others still run.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from app.config import Settings, settings as default_settings
from app.core.exceptions import ModelUnavailable
from app.core.geometry import calculate_distance
from app.core.types import (
    AnomalyRecord,
    AnomalyType,
    DetectorFailed,
    Position,
    Severity,
    TouristState,
    TouristStatus,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    "risk_score", "inactive_hours", "location_history", "heart_rate",
    "battery_level", "latitude", "longitude", "days_registered",
    "family_tracking", "emergency_status",
]

DEFAULT_HEART_RATE = 70
DEFAULT_BATTERY_LEVEL = 100


@dataclass(frozen=True)
class DetectionThresholds:
    route_deviation_m: float = 500.0
    inactivity_minutes: float = 30.0
    speed_kmh: float = 50.0
    heart_rate_min: float = 50.0
    heart_rate_max: float = 150.0
    heart_rate_critical_min: float = 40.0
    heart_rate_critical_max: float = 180.0
    sync_stale_minutes: float = 60.0
    sync_critical_minutes: float = 180.0
    behavior_incident_count: int = 3
    behavior_risk_score: float = 0.8
    learned_confidence: float = 0.7
    learned_high_confidence: float = 0.85

    @classmethod
    def from_settings(cls, config: Settings) -> "DetectionThresholds":
        return cls(
            route_deviation_m=config.ROUTE_DEVIATION_M,
            inactivity_minutes=config.INACTIVITY_MINUTES,
            speed_kmh=config.SPEED_KMH,
            heart_rate_min=config.HEART_RATE_MIN,
            heart_rate_max=config.HEART_RATE_MAX,
            heart_rate_critical_min=config.HEART_RATE_CRITICAL_MIN,
            heart_rate_critical_max=config.HEART_RATE_CRITICAL_MAX,
            sync_stale_minutes=config.SYNC_STALE_MINUTES,
            sync_critical_minutes=config.SYNC_CRITICAL_MINUTES,
            behavior_incident_count=config.BEHAVIOR_INCIDENT_COUNT,
            behavior_risk_score=config.BEHAVIOR_RISK_SCORE,
            learned_confidence=config.LEARNED_CONFIDENCE,
            learned_high_confidence=config.LEARNED_HIGH_CONFIDENCE,
        )


class DistressScorer(ABC):
    """Scores a fixed 10-value feature vector (see FEATURE_NAMES) in [0, 1]"""

    version: str = "1.0"

    @abstractmethod
    def score(self, features: Sequence[float]) -> float:
        pass


class LogisticDistressScorer(DistressScorer):
    """Weighted logistic combination of the distress features"""

    def __init__(
        self,
        weights: Sequence[float],
        bias: float = 0.0,
        scale: Optional[Sequence[float]] = None,
        version: str = "1.0",
    ):
        if len(weights) != len(FEATURE_NAMES):
            raise ValueError(f"Expected {len(FEATURE_NAMES)} weights, got {len(weights)}")
        if scale is not None and len(scale) != len(FEATURE_NAMES):
            raise ValueError(f"Expected {len(FEATURE_NAMES)} scale factors, got {len(scale)}")
        self.weights = list(weights)
        self.bias = bias
        self.scale = list(scale) if scale is not None else [1.0] * len(FEATURE_NAMES)
        self.version = version

    @classmethod
    def from_file(cls, path: str) -> "LogisticDistressScorer":
        """Load {"weights": [...], "bias": b, "scale": [...], "version": v} from JSON"""
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return cls(
            weights=data["weights"],
            bias=data.get("bias", 0.0),
            scale=data.get("scale"),
            version=str(data.get("version", "1.0")),
        )

    def score(self, features: Sequence[float]) -> float:
        if len(features) != len(self.weights):
            raise ValueError(f"Expected {len(self.weights)} features, got {len(features)}")
        z = self.bias + sum(w * (x / s if s else x) for w, x, s in zip(self.weights, features, self.scale))
        # numerically safe sigmoid
        if z >= 0:
            return 1 / (1 + math.exp(-z))
        ez = math.exp(z)
        return ez / (1 + ez)


@dataclass
class DetectionContext:
    """Thresholds and scoring model shared by all detection calls"""
    thresholds: DetectionThresholds = field(default_factory=DetectionThresholds)
    scorer: Optional[DistressScorer] = None

    @classmethod
    def from_settings(cls, config: Settings = default_settings) -> "DetectionContext":
        scorer = None
        if config.MODEL_WEIGHTS_PATH:
            try:
                scorer = LogisticDistressScorer.from_file(config.MODEL_WEIGHTS_PATH)
                logger.info(f"Loaded distress model from {config.MODEL_WEIGHTS_PATH}")
            except (OSError, ValueError, KeyError) as e:
                logger.error(f"Could not load distress model from {config.MODEL_WEIGHTS_PATH}: {e}")
        return cls(thresholds=DetectionThresholds.from_settings(config), scorer=scorer)


@dataclass
class DetectionReport:
    anomalies: List[AnomalyRecord] = field(default_factory=list)
    failures: List[DetectorFailed] = field(default_factory=list)
    skipped: List[Tuple[str, AnomalyType]] = field(default_factory=list)

    def extend(self, other: "DetectionReport") -> None:
        self.anomalies.extend(other.anomalies)
        self.failures.extend(other.failures)
        self.skipped.extend(other.skipped)

    def risk_levels(self) -> Dict[str, int]:
        return {
            "high": sum(1 for a in self.anomalies if a.risk_score > 0.8),
            "medium": sum(1 for a in self.anomalies if 0.5 < a.risk_score <= 0.8),
            "low": sum(1 for a in self.anomalies if a.risk_score <= 0.5),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anomalies": [a.to_dict() for a in self.anomalies],
            "total_detected": len(self.anomalies),
            "risk_levels": self.risk_levels(),
            "failures": [f.to_dict() for f in self.failures],
            "skipped": [{"tourist_id": tid, "type": t.value} for tid, t in self.skipped],
        }


def parse_route(route: Any) -> List[Position]:
    """
    Turn an expected route into positions. Raw JSON strings hold a list of
    {"latitude": .., "longitude": ..} objects; malformed input raises.
    """
    if isinstance(route, str):
        points = json.loads(route)
        if not isinstance(points, list):
            raise ValueError("Expected route must be a JSON list of points")
        return [
            Position(latitude=float(p["latitude"]), longitude=float(p["longitude"]))
            for p in points
        ]
    return list(route)


def find_nearest_point(position: Position, route: Sequence[Position]) -> Tuple[Position, float]:
    """Linear scan; the first point at the minimum distance wins"""
    nearest = route[0]
    min_distance = calculate_distance(position, nearest)
    for point in route[1:]:
        distance = calculate_distance(position, point)
        if distance < min_distance:
            min_distance = distance
            nearest = point
    return nearest, min_distance


def detect_route_deviation(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    if state.expected_route is None or state.current_position is None:
        return None

    route = parse_route(state.expected_route)
    if not route:
        return None

    threshold = context.thresholds.route_deviation_m
    current = state.current_position
    nearest, deviation = find_nearest_point(current, route)

    if deviation <= threshold:
        return None

    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.ROUTE_DEVIATION,
        severity=Severity.HIGH if deviation > threshold * 2 else Severity.MEDIUM,
        risk_score=min(deviation / threshold, 1),
        details={
            "deviation": round(deviation),
            "expected_location": {"latitude": nearest.latitude, "longitude": nearest.longitude},
            "current_location": {"latitude": current.latitude, "longitude": current.longitude},
        },
        timestamp=now,
        description=f"Tourist deviated {round(deviation)}m from expected route",
    )


def detect_inactivity(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    threshold = context.thresholds.inactivity_minutes
    inactive_minutes = (now - state.last_activity_at).total_seconds() / 60

    if inactive_minutes <= threshold:
        return None

    risk_score = min(inactive_minutes / (threshold * 2), 1)
    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.INACTIVITY,
        severity=Severity.HIGH if risk_score > 0.7 else Severity.MEDIUM,
        risk_score=risk_score,
        details={
            "inactive_minutes": round(inactive_minutes),
            "last_activity": state.last_activity_at.isoformat(),
            "last_location": state.current_position.to_dict() if state.current_position else None,
        },
        timestamp=now,
        description=f"Tourist inactive for {round(inactive_minutes)} minutes",
    )


def detect_speed_anomaly(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    if len(state.position_history) < 2:
        return None

    prev, current = state.position_history[-2], state.position_history[-1]
    distance = calculate_distance(prev, current)
    time_diff = (current.timestamp - prev.timestamp).total_seconds()
    if time_diff <= 0:
        return None

    speed = (distance / time_diff) * 3.6  # km/h
    threshold = context.thresholds.speed_kmh
    if speed <= threshold:
        return None

    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.SPEED_ANOMALY,
        severity=Severity.HIGH if speed > threshold * 2 else Severity.MEDIUM,
        risk_score=min(speed / (threshold * 2), 1),
        details={
            "speed": round(speed),
            "distance": round(distance),
            "time_diff": round(time_diff),
            "locations": [prev.to_dict(), current.to_dict()],
        },
        timestamp=now,
        description=f"Unusual speed detected: {round(speed)} km/h",
    )


def detect_vitals_anomaly(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    vitals = state.vitals
    if vitals is None or vitals.heart_rate is None:
        return None

    t = context.thresholds
    heart_rate = vitals.heart_rate
    if t.heart_rate_min <= heart_rate <= t.heart_rate_max:
        return None

    if heart_rate < t.heart_rate_min:
        risk_score = (t.heart_rate_min - heart_rate) / t.heart_rate_min
    else:
        risk_score = (heart_rate - t.heart_rate_max) / t.heart_rate_max

    critical = heart_rate < t.heart_rate_critical_min or heart_rate > t.heart_rate_critical_max
    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.VITALS_ANOMALY,
        severity=Severity.HIGH if critical else Severity.MEDIUM,
        risk_score=risk_score,
        details={
            "heart_rate": heart_rate,
            "normal_range": {"min": t.heart_rate_min, "max": t.heart_rate_max},
            "device_id": vitals.device_id,
            "last_reading": vitals.last_sync_at.isoformat() if vitals.last_sync_at else None,
        },
        timestamp=now,
        description=f"Abnormal heart rate detected: {heart_rate:g} BPM",
    )


def detect_device_connectivity(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    vitals = state.vitals
    if vitals is None or vitals.last_sync_at is None:
        return None

    t = context.thresholds
    sync_age = (now - vitals.last_sync_at).total_seconds() / 60  # minutes
    if sync_age <= t.sync_stale_minutes:
        return None

    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.DEVICE_CONNECTIVITY,
        severity=Severity.HIGH if sync_age > t.sync_critical_minutes else Severity.MEDIUM,
        risk_score=min(sync_age / t.sync_critical_minutes, 1),
        details={
            "last_sync": vitals.last_sync_at.isoformat(),
            "sync_age": round(sync_age),
            "device_id": vitals.device_id,
            "battery_level": vitals.battery_level,
        },
        timestamp=now,
        description=f"Device not synced for {round(sync_age)} minutes",
    )


def detect_behavior_pattern(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    t = context.thresholds
    if state.incident_count_24h < t.behavior_incident_count:
        return None

    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.BEHAVIOR_PATTERN,
        severity=Severity.HIGH,
        risk_score=t.behavior_risk_score,
        details={
            "incident_count": state.incident_count_24h,
            "incident_types": list(state.incident_types_24h),
            "timeframe": "24 hours",
        },
        timestamp=now,
        description=f"Multiple incidents ({state.incident_count_24h}) reported in 24 hours",
    )


def extract_features(state: TouristState, now: datetime) -> List[float]:
    """Feature vector in FEATURE_NAMES order"""
    inactive_minutes = (now - state.last_activity_at).total_seconds() / 60
    vitals = state.vitals
    position = state.current_position
    return [
        state.risk_score or 0.0,
        inactive_minutes / 60,
        len(state.position_history) / 100,
        vitals.heart_rate if vitals and vitals.heart_rate is not None else DEFAULT_HEART_RATE,
        vitals.battery_level if vitals and vitals.battery_level is not None else DEFAULT_BATTERY_LEVEL,
        position.latitude if position else 0.0,
        position.longitude if position else 0.0,
        (now - state.registered_at).total_seconds() / (60 * 60 * 24),
        1.0 if state.family_tracking_enabled else 0.0,
        1.0 if state.status == TouristStatus.EMERGENCY else 0.0,
    ]


def detect_learned_pattern(state: TouristState, context: DetectionContext, now: datetime) -> Optional[AnomalyRecord]:
    if context.scorer is None:
        raise ModelUnavailable("Distress scoring model is not loaded")

    t = context.thresholds
    confidence = context.scorer.score(extract_features(state, now))
    if confidence <= t.learned_confidence:
        return None

    return AnomalyRecord(
        tourist_id=state.id,
        type=AnomalyType.LEARNED_PATTERN,
        severity=Severity.HIGH if confidence > t.learned_high_confidence else Severity.MEDIUM,
        risk_score=confidence,
        details={
            "features": FEATURE_NAMES,
            "confidence": confidence,
            "model_version": context.scorer.version,
        },
        timestamp=now,
        description=f"Learned model detected distress pattern (confidence: {round(confidence * 100)}%)",
    )


Detector = Callable[[TouristState, DetectionContext, datetime], Optional[AnomalyRecord]]

DETECTORS: List[Tuple[AnomalyType, Detector]] = [
    (AnomalyType.ROUTE_DEVIATION, detect_route_deviation),
    (AnomalyType.INACTIVITY, detect_inactivity),
    (AnomalyType.SPEED_ANOMALY, detect_speed_anomaly),
    (AnomalyType.VITALS_ANOMALY, detect_vitals_anomaly),
    (AnomalyType.DEVICE_CONNECTIVITY, detect_device_connectivity),
    (AnomalyType.BEHAVIOR_PATTERN, detect_behavior_pattern),
    (AnomalyType.LEARNED_PATTERN, detect_learned_pattern),
]


def detect_for_tourist(
    state: TouristState,
    context: DetectionContext,
    now: Optional[datetime] = None,
    detectors: Optional[Sequence[Tuple[AnomalyType, Detector]]] = None,
) -> DetectionReport:
    """Run every detector against one snapshot of the tourist's state"""
    now = ensure_utc(now) or utcnow()
    report = DetectionReport()

    for anomaly_type, detector in detectors or DETECTORS:
        try:
            record = detector(state, context, now)
        except ModelUnavailable:
            report.skipped.append((state.id, anomaly_type))
            continue
        except Exception as e:
            logger.warning(f"Detector {anomaly_type.value} failed for tourist {state.id}: {e}")
            report.failures.append(DetectorFailed(type=anomaly_type, tourist_id=state.id, error=str(e)))
            continue
        if record is not None:
            report.anomalies.append(record)

    return report


def detect_anomalies(
    states: Iterable[TouristState],
    context: DetectionContext,
    now: Optional[datetime] = None,
) -> DetectionReport:
    """Batch detection over snapshots of all active tourists"""
    now = ensure_utc(now) or utcnow()
    report = DetectionReport()
    for state in states:
        report.extend(detect_for_tourist(state, context, now))
    return report
