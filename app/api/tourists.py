from fastapi import APIRouter, HTTPException
from typing import Any

from app.core.exceptions import InvalidGeometry, UnknownTourist
from app.core.types import Position
from app.dependencies import MonitorDep
from app.models.location import TouristRegisterRequest

router = APIRouter()

@router.post("", status_code=201)
async def register_tourist(
    monitor: MonitorDep,
    tourist_data: TouristRegisterRequest
) -> dict[str, Any]:
    """Create or refresh the externally-owned part of a tourist's state"""
    attrs: dict[str, Any] = {
        "incident_count_24h": tourist_data.incident_count_24h,
        "incident_types_24h": tourist_data.incident_types_24h,
        "family_tracking_enabled": tourist_data.family_tracking_enabled,
    }
    if tourist_data.registered_at is not None:
        attrs["registered_at"] = tourist_data.registered_at
    if tourist_data.expected_route is not None:
        try:
            attrs["expected_route"] = tuple(
                Position(latitude=p.latitude, longitude=p.longitude)
                for p in tourist_data.expected_route
            )
        except InvalidGeometry as e:
            raise HTTPException(status_code=400, detail=str(e))

    state = monitor.registry.register(tourist_data.tourist_id, **attrs)
    return {"message": "Tourist registered", "tourist": state.to_dict()}

@router.get("/{tourist_id}")
async def get_tourist(monitor: MonitorDep, tourist_id: str) -> dict[str, Any]:
    try:
        state = monitor.registry.get_snapshot(tourist_id)
    except UnknownTourist:
        raise HTTPException(status_code=404, detail="Tourist not found")
    return state.to_dict()
