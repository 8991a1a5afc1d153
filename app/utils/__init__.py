"""
Utility modules for the Tourist Safety Monitoring service

This package contains utility functions and services:
- notifications: incident webhook and live alert feed delivery
"""

from .notifications import (
    NotificationService,
    IncidentWebhookService,
    AlertFeedService,
    NotificationManager,
    notification_manager
)

__all__ = [
    # Notification services
    "NotificationService",
    "IncidentWebhookService",
    "AlertFeedService",
    "NotificationManager",
    "notification_manager"
]
