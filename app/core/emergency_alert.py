import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.risk import DispatchEvent
from app.utils.notifications import NotificationManager, notification_manager

logger = logging.getLogger(__name__)

class EmergencyDispatchService:
    """Turns emergency dispatch events into incident reports and alerts"""

    def __init__(self, manager: Optional[NotificationManager] = None):
        self.manager = manager or notification_manager

    async def handle_dispatch(self, event: DispatchEvent) -> bool:
        """
        Deliver one dispatch event to the incident collaborator and the
        operator alert feed
        """
        incident_report = self._create_incident_report(event)
        feed_message = self._format_feed_alert(event)

        results = await self.manager.send_multi_channel_notification(incident_report, feed_message)
        success = results.get("incident", False)
        if not success:
            logger.error(f"Incident creation failed for tourist {event.tourist_id}")
        return success

    def _create_incident_report(self, event: DispatchEvent) -> Dict[str, Any]:
        """Incident payload for the incident-management collaborator"""
        severity = "critical" if event.reason == "panic" else "high"
        description = event.message or "; ".join(a.description for a in event.anomalies) \
            or "Tourist entered emergency state"
        return {
            "type": "panic" if event.reason == "panic" else "anomaly_detected",
            "severity": severity,
            "tourist_id": event.tourist_id,
            "risk_score": round(event.risk_score, 4),
            "location": event.position.to_dict() if event.position else None,
            "description": description,
            "anomalies": [a.to_dict() for a in event.anomalies],
            "reporter": "safety_core",
            "detected_at": event.created_at.isoformat(),
            "created_at": datetime.now(timezone.utc).isoformat()
        }

    def _format_feed_alert(self, event: DispatchEvent) -> Dict[str, Any]:
        return {
            **event.to_dict(),
            "type": "emergency_alert",
        }

# Global instance
emergency_service = EmergencyDispatchService()
