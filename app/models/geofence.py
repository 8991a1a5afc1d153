from sqlmodel import SQLModel, Field
from typing import Optional, List, Literal

from app.core.exceptions import InvalidGeometry
from app.core.types import (
    AlertConfig,
    Boundary,
    CircleBoundary,
    GeofenceZone,
    PolygonBoundary,
    RiskLevel,
)
from app.models.location import PointPayload

class BoundaryPayload(SQLModel):
    type: Literal["Circle", "Polygon"]
    center: Optional[PointPayload] = None
    radius: Optional[float] = None  # meters
    coordinates: Optional[List[List[float]]] = None  # [[lat, lon], ...]

    def to_boundary(self) -> Boundary:
        if self.type == "Circle":
            if self.center is None or self.radius is None:
                raise InvalidGeometry("Circle boundary needs a center and a radius")
            return CircleBoundary(
                center=(self.center.latitude, self.center.longitude),
                radius_m=self.radius
            )

        if not self.coordinates or any(len(pair) != 2 for pair in self.coordinates):
            raise InvalidGeometry("Polygon boundary needs [lat, lon] coordinate pairs")
        return PolygonBoundary(vertices=tuple((lat, lon) for lat, lon in self.coordinates))

class AlertConfigPayload(SQLModel):
    entry_alert: bool = False
    max_capacity: Optional[int] = Field(default=None, ge=0)

class ZonePayload(SQLModel):
    zone_id: str
    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.LOW
    boundary: BoundaryPayload
    alerts: AlertConfigPayload = Field(default_factory=AlertConfigPayload)
    is_active: bool = True

    def to_zone(self) -> GeofenceZone:
        return GeofenceZone(
            id=self.zone_id,
            name=self.name,
            risk_level=self.risk_level,
            boundary=self.boundary.to_boundary(),
            alert_config=AlertConfig(
                trigger_on_entry=self.alerts.entry_alert,
                max_capacity=self.alerts.max_capacity
            ),
            is_active=self.is_active,
            zone_type=self.type,
            description=self.description
        )

class ZoneCheckRequest(SQLModel):
    latitude: float
    longitude: float
    tourist_id: Optional[str] = None
