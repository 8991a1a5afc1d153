from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from typing import Any

from app.core.exceptions import InvalidGeometry
from app.dependencies import DispatcherDep, MonitorDep
from app.models.location import LocationUpdateRequest

router = APIRouter()

@router.post("/update")
async def update_location(
    monitor: MonitorDep,
    dispatcher: DispatcherDep,
    request: Request,
    location_data: LocationUpdateRequest,
    background_tasks: BackgroundTasks
) -> dict[str, Any]:
    try:
        position = location_data.to_position()
    except InvalidGeometry as e:
        raise HTTPException(status_code=400, detail=str(e))

    vitals = location_data.vitals.to_vitals() if location_data.vitals else None
    result = monitor.ingest_update(location_data.tourist_id, position, vitals)

    if result.risk and result.risk.dispatch:
        background_tasks.add_task(dispatcher.handle_dispatch, result.risk.dispatch)

    # Broadcast to WebSocket clients
    websocket_manager = request.app.state.websocket_manager
    await websocket_manager.broadcast({
        "type": "location_update",
        "tourist_id": location_data.tourist_id,
        "latitude": position.latitude,
        "longitude": position.longitude,
        "status": result.risk.status.value if result.risk else None,
        "zones": [z.zone_id for z in result.zones],
        "timestamp": position.timestamp.isoformat()
    })

    return {
        "message": "Location updated successfully",
        **result.to_dict()
    }
