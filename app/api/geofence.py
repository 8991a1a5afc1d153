from fastapi import APIRouter, HTTPException
from typing import Any, List

from app.core.exceptions import InvalidGeometry
from app.core.types import Position
from app.dependencies import MonitorDep
from app.models.geofence import ZoneCheckRequest, ZonePayload

router = APIRouter()

@router.put("/zones")
async def load_zones(
    monitor: MonitorDep,
    zones: List[ZonePayload]
) -> dict[str, Any]:
    """Replace the zone snapshot supplied by the authority collaborator"""
    try:
        snapshot = [zone.to_zone() for zone in zones]
        monitor.geofence.load_zones(snapshot)
    except (InvalidGeometry, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"message": "Geofences loaded successfully", "count": len(snapshot)}

@router.get("/zones")
async def list_zones(monitor: MonitorDep) -> dict[str, Any]:
    stats = [monitor.geofence.zone_statistics(zone.id) for zone in monitor.geofence.zones]
    return {"zones": stats}

@router.post("/check")
async def check_geofences(
    monitor: MonitorDep,
    check: ZoneCheckRequest
) -> dict[str, Any]:
    try:
        position = Position(latitude=check.latitude, longitude=check.longitude)
    except InvalidGeometry as e:
        raise HTTPException(status_code=400, detail=str(e))

    matches = monitor.geofence.evaluate(position, tourist_id=check.tourist_id)
    return {
        "zones": [m.to_dict() for m in matches],
        "alerts_triggered": [m.to_dict() for m in monitor.geofence.alerts(matches)]
    }

@router.get("/zones/{zone_id}/stats")
async def get_zone_stats(monitor: MonitorDep, zone_id: str) -> dict[str, Any]:
    stats = monitor.geofence.zone_statistics(zone_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Geofence not found")
    return stats

@router.post("/occupancy/recompute")
async def recompute_occupancy(monitor: MonitorDep) -> dict[str, Any]:
    return {"occupancy": monitor.recompute_occupancy()}
