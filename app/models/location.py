from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from typing import Optional, List

from app.core.types import Position, Vitals

class PointPayload(SQLModel):
    latitude: float
    longitude: float

class PositionPayload(PointPayload):
    timestamp: Optional[datetime] = None
    accuracy: Optional[float] = Field(default=None, ge=0)

    def to_position(self) -> Position:
        return Position(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp or datetime.now(timezone.utc),
            accuracy=self.accuracy
        )

class VitalsPayload(SQLModel):
    heart_rate: Optional[float] = Field(default=None, ge=0)
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)
    last_sync_at: Optional[datetime] = None
    device_id: Optional[str] = None

    def to_vitals(self) -> Vitals:
        return Vitals(
            heart_rate=self.heart_rate,
            battery_level=self.battery_level,
            last_sync_at=self.last_sync_at or datetime.now(timezone.utc),
            device_id=self.device_id
        )

class LocationUpdateRequest(PositionPayload):
    tourist_id: str
    vitals: Optional[VitalsPayload] = None

class TouristRegisterRequest(SQLModel):
    tourist_id: str
    expected_route: Optional[List[PointPayload]] = None
    incident_count_24h: int = Field(default=0, ge=0)
    incident_types_24h: List[str] = Field(default_factory=list)
    registered_at: Optional[datetime] = None
    family_tracking_enabled: bool = False
