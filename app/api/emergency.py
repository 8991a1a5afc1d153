from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from typing import Any

from app.core.exceptions import InvalidGeometry, UnknownTourist
from app.dependencies import DispatcherDep, MonitorDep
from app.models.emergency import AcknowledgeRequest, PanicRequest

router = APIRouter()

@router.post("/panic")
async def trigger_panic(
    monitor: MonitorDep,
    dispatcher: DispatcherDep,
    request: Request,
    panic_data: PanicRequest,
    background_tasks: BackgroundTasks
) -> dict[str, Any]:
    try:
        position = panic_data.location.to_position() if panic_data.location else None
        update = monitor.trigger_panic(panic_data.tourist_id, position, panic_data.message)
    except InvalidGeometry as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownTourist:
        raise HTTPException(status_code=404, detail="Tourist not found")

    # Send notifications in background
    if update.dispatch:
        background_tasks.add_task(dispatcher.handle_dispatch, update.dispatch)

    # Notify via WebSocket
    websocket_manager = request.app.state.websocket_manager
    await websocket_manager.broadcast({
        "type": "panic_alert",
        "tourist_id": panic_data.tourist_id,
        "location": position.to_dict() if position else None,
        "message": panic_data.message
    })

    return {
        "message": "Panic alert sent successfully",
        "status": "emergency_response_initiated",
        "tourist": update.to_dict()
    }

@router.post("/acknowledge")
async def acknowledge_alert(
    monitor: MonitorDep,
    ack_data: AcknowledgeRequest
) -> dict[str, Any]:
    try:
        update = monitor.acknowledge(ack_data.tourist_id, ack_data.status, ack_data.risk_score)
    except UnknownTourist:
        raise HTTPException(status_code=404, detail="Tourist not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"message": "Alert acknowledged", **update.to_dict()}
