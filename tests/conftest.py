"""Pytest fixtures for the safety core tests."""

from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.core.anomaly_detection import DetectionContext
from app.core.geofencing import GeofenceEngine
from app.core.monitor import SafetyMonitor
from app.core.types import (
    CircleBoundary,
    GeofenceZone,
    PolygonBoundary,
    RiskLevel,
    TouristState,
)

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def times_square_zone():
    """Circular zone, 100m radius, centered on Times Square."""
    return GeofenceZone(
        id="ZONE-TS",
        name="Times Square",
        risk_level=RiskLevel.MODERATE,
        boundary=CircleBoundary(center=(40.7580, -73.9855), radius_m=100),
    )


@pytest.fixture
def square_zone():
    """Unit square polygon around (0.5, 0.5), high risk."""
    return GeofenceZone(
        id="ZONE-SQ",
        name="Square",
        risk_level=RiskLevel.HIGH,
        boundary=PolygonBoundary(vertices=((0, 0), (0, 1), (1, 1), (1, 0))),
    )


@pytest.fixture
def engine(times_square_zone, square_zone):
    return GeofenceEngine([times_square_zone, square_zone])


@pytest.fixture
def context():
    """Default thresholds, no learned model."""
    return DetectionContext()


@pytest.fixture
def make_state(now):
    """Build a tourist state that is active as of `now` unless told otherwise."""
    def _make(tourist_id="T-1", positions=(), **attrs):
        attrs.setdefault("last_activity_at", now)
        attrs.setdefault("registered_at", now - timedelta(days=2))
        state = TouristState(id=tourist_id, **attrs)
        for position in positions:
            state.record_position(position)
        return state
    return _make


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, HISTORY_RETENTION=5)


@pytest.fixture
def monitor(test_settings, times_square_zone, square_zone):
    return SafetyMonitor(
        test_settings,
        geofence=GeofenceEngine([times_square_zone, square_zone]),
    )


@pytest.fixture
def app_client():
    """FastAPI TestClient; the lifespan builds a fresh monitor per client."""
    from fastapi.testclient import TestClient
    from app.main import app
    with TestClient(app) as client:
        yield client
