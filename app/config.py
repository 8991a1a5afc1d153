from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"

    # Tourist state
    HISTORY_RETENTION: int = 100  # position history ring buffer length

    # Route deviation
    ROUTE_DEVIATION_M: float = 500.0

    # Inactivity
    INACTIVITY_MINUTES: float = 30.0

    # Speed (km/h)
    SPEED_KMH: float = 50.0

    # Wearable vitals (bpm)
    HEART_RATE_MIN: float = 50.0
    HEART_RATE_MAX: float = 150.0
    HEART_RATE_CRITICAL_MIN: float = 40.0
    HEART_RATE_CRITICAL_MAX: float = 180.0

    # Device connectivity (minutes since last sync)
    SYNC_STALE_MINUTES: float = 60.0
    SYNC_CRITICAL_MINUTES: float = 180.0

    # Behaviour pattern
    BEHAVIOR_INCIDENT_COUNT: int = 3
    BEHAVIOR_RISK_SCORE: float = 0.8

    # Learned distress pattern
    LEARNED_CONFIDENCE: float = 0.7
    LEARNED_HIGH_CONFIDENCE: float = 0.85
    MODEL_WEIGHTS_PATH: Optional[str] = None

    # Heatmap / clustering (degree units, not meters)
    HEATMAP_GRID_SIZE: int = 20
    HEATMAP_RADIUS_DEG: float = 0.01  # ~1km
    HEATMAP_EPSILON: float = 0.001
    CLUSTER_RADIUS_DEG: float = 0.001  # ~100m

    # Incident collaborator
    INCIDENT_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT: float = 10.0

    # WebSocket
    WEBSOCKET_PING_INTERVAL: int = 30
    WEBSOCKET_PING_TIMEOUT: int = 10

    class Config:
        env_file = ".env"

settings = Settings()
