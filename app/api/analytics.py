from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.analytics import Bounds
from app.core.exceptions import InvalidGeometry
from app.dependencies import DispatcherDep, MonitorDep

router = APIRouter()

@router.get("/heatmap")
async def get_heatmap(
    monitor: MonitorDep,
    bounds: str = Query(..., description="north,south,east,west"),
    grid_size: Optional[int] = Query(default=None, ge=1, le=200)
) -> dict[str, Any]:
    try:
        box = Bounds.parse(bounds)
    except InvalidGeometry as e:
        raise HTTPException(status_code=400, detail=str(e))

    return monitor.heatmap(box, grid_size)

@router.get("/clusters")
async def get_clusters(monitor: MonitorDep) -> dict[str, Any]:
    clusters = monitor.clusters()
    return {
        "clusters": [c.to_dict() for c in clusters],
        "total_clusters": len(clusters)
    }

@router.get("/anomalies")
async def get_anomalies(monitor: MonitorDep) -> dict[str, Any]:
    """Current detector findings; tourist status is left untouched"""
    report = monitor.scan_anomalies()
    return {
        "detection_time": datetime.now(timezone.utc).isoformat(),
        **report.to_dict()
    }

@router.post("/anomalies")
async def run_detection_cycle(
    monitor: MonitorDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks
) -> dict[str, Any]:
    """Run a detection cycle over all tourists, escalating and dispatching"""
    batch = monitor.detect_anomalies()
    for event in batch.dispatches:
        background_tasks.add_task(dispatcher.handle_dispatch, event)

    return {
        "detection_time": datetime.now(timezone.utc).isoformat(),
        **batch.report.to_dict(),
        "status_changes": [u.to_dict() for u in batch.updates if u.escalated]
    }
