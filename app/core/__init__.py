"""
Core modules for the Tourist Safety Monitoring service

This package contains the core business logic:
- geometry: distance, bearing and containment primitives
- geofencing: zone registry, containment evaluation and live occupancy
- analytics: heatmap density and proximity clustering for the dashboard
- anomaly_detection: per-tourist distress detectors
- risk: risk aggregation, status transitions and emergency dispatch events
- monitor: per-update pipeline over a per-tourist locked state registry
- emergency_alert: delivery of dispatch events to external collaborators
"""

from .exceptions import (
    SafetyCoreError,
    InvalidGeometry,
    UnknownTourist,
    ModelUnavailable
)

from .geometry import (
    calculate_distance,
    calculate_bearing,
    point_in_circle,
    point_in_polygon,
    validate_coordinates,
    validate_polygon
)

from .geofencing import GeofenceEngine

from .analytics import (
    Bounds,
    SpatialAggregator
)

from .anomaly_detection import (
    DetectionContext,
    DetectionThresholds,
    LogisticDistressScorer,
    detect_anomalies,
    detect_for_tourist
)

from .monitor import (
    SafetyMonitor,
    TouristRegistry
)

__all__ = [
    # Errors
    "SafetyCoreError",
    "InvalidGeometry",
    "UnknownTourist",
    "ModelUnavailable",

    # Geometry
    "calculate_distance",
    "calculate_bearing",
    "point_in_circle",
    "point_in_polygon",
    "validate_coordinates",
    "validate_polygon",

    # Geofencing
    "GeofenceEngine",

    # Analytics
    "Bounds",
    "SpatialAggregator",

    # Anomaly detection
    "DetectionContext",
    "DetectionThresholds",
    "LogisticDistressScorer",
    "detect_anomalies",
    "detect_for_tourist",

    # Orchestration
    "SafetyMonitor",
    "TouristRegistry"
]
