from typing import Annotated

from fastapi import Depends, Request

from app.core.monitor import SafetyMonitor
from app.core.emergency_alert import EmergencyDispatchService, emergency_service

# Monitor instance is created once in the app lifespan and kept on app.state
def get_monitor(request: Request) -> SafetyMonitor:
    return request.app.state.monitor

def get_dispatcher(request: Request) -> EmergencyDispatchService:
    return getattr(request.app.state, "dispatcher", emergency_service)

MonitorDep = Annotated[SafetyMonitor, Depends(get_monitor)]
DispatcherDep = Annotated[EmergencyDispatchService, Depends(get_dispatcher)]
