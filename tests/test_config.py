"""Tests for environment-driven settings."""

import os
from unittest.mock import patch

from app.config import Settings
from app.core.anomaly_detection import DetectionThresholds
from app.core.monitor import SafetyMonitor


class TestSettings:
    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.HISTORY_RETENTION == 100
        assert config.ROUTE_DEVIATION_M == 500
        assert config.INACTIVITY_MINUTES == 30
        assert config.SPEED_KMH == 50
        assert config.HEATMAP_GRID_SIZE == 20
        assert config.CLUSTER_RADIUS_DEG == 0.001
        assert config.MODEL_WEIGHTS_PATH is None
        assert config.INCIDENT_WEBHOOK_URL is None

    def test_environment_override(self):
        env_vars = {
            "SPEED_KMH": "80",
            "HISTORY_RETENTION": "10",
            "INCIDENT_WEBHOOK_URL": "http://incidents.test/hook",
        }
        with patch.dict(os.environ, env_vars):
            config = Settings(_env_file=None)

        assert config.SPEED_KMH == 80
        assert config.HISTORY_RETENTION == 10
        assert config.INCIDENT_WEBHOOK_URL == "http://incidents.test/hook"

    def test_thresholds_follow_settings(self):
        config = Settings(_env_file=None, INACTIVITY_MINUTES=15, HEART_RATE_MAX=140)
        thresholds = DetectionThresholds.from_settings(config)
        assert thresholds.inactivity_minutes == 15
        assert thresholds.heart_rate_max == 140

    def test_monitor_uses_retention(self):
        monitor = SafetyMonitor(Settings(_env_file=None, HISTORY_RETENTION=7, CLUSTER_RADIUS_DEG=0.002))
        assert monitor.registry.history_limit == 7
        assert monitor.aggregator.cluster_radius == 0.002
