import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from app.config import settings

logger = logging.getLogger(__name__)

class NotificationService(ABC):
    """Abstract base class for notification services"""

    @abstractmethod
    async def send_notification(self, payload: Dict[str, Any]) -> bool:
        pass

class IncidentWebhookService(NotificationService):
    """Posts incident payloads to the incident-management collaborator"""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.INCIDENT_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def send_notification(self, payload: Dict[str, Any]) -> bool:
        if not self.configured:
            logger.warning("Incident webhook not configured, skipping incident creation")
            return False

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json", "Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:

                    if 200 <= response.status < 300:
                        logger.info(f"Incident created for tourist {payload.get('tourist_id')}")
                        return True

                    response_text = await response.text()
                    logger.error(f"Incident API error: {response.status} - {response_text}")
                    return False

        except asyncio.TimeoutError:
            logger.error("Incident request timeout")
            return False
        except aiohttp.ClientError as e:
            logger.error(f"Incident request error: {e}")
            return False

class AlertFeedService(NotificationService):
    """Pushes alerts to connected operator dashboards"""

    def __init__(self, broadcast: Optional[Callable[[Dict[str, Any]], Awaitable[None]]] = None):
        self.broadcast = broadcast

    async def send_notification(self, payload: Dict[str, Any]) -> bool:
        if self.broadcast is None:
            logger.debug("No alert feed attached")
            return False
        await self.broadcast(payload)
        return True

class NotificationManager:
    """Centralized notification management"""

    def __init__(
        self,
        incident_service: Optional[IncidentWebhookService] = None,
        alert_feed: Optional[AlertFeedService] = None,
    ):
        self.incident_service = incident_service or IncidentWebhookService()
        self.alert_feed = alert_feed or AlertFeedService()

    async def send_multi_channel_notification(
        self,
        incident_payload: Dict[str, Any],
        feed_payload: Dict[str, Any],
    ) -> Dict[str, bool]:
        """Send an incident to the incident collaborator and the live alert feed"""
        incident_result, feed_result = await asyncio.gather(
            self.incident_service.send_notification(incident_payload),
            self.alert_feed.send_notification(feed_payload),
            return_exceptions=True
        )

        results = {}
        for channel, result in (("incident", incident_result), ("alert_feed", feed_result)):
            if isinstance(result, BaseException):
                logger.error(f"{channel} notification failed: {result}")
                results[channel] = False
            else:
                results[channel] = result

        self._log_notification_summary(results)
        return results

    def _log_notification_summary(self, results: Dict[str, bool]):
        """Log summary of notification results"""
        sent = sum(1 for success in results.values() if success)
        failed = len(results) - sent
        logger.critical(f"Emergency notification summary - Sent: {sent}, Failed: {failed}")

# Global notification manager instance
notification_manager = NotificationManager()
