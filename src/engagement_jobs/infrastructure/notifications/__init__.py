"""Notification adapters."""

from engagement_jobs.infrastructure.notifications.mqtt_notifier import MqttNotifier
from engagement_jobs.infrastructure.notifications.noop_notifier import NoopNotifier
from engagement_jobs.infrastructure.notifications.webhook_notifier import (
    NotificationDeliveryError,
    WebhookNotifier,
)

__all__ = ["MqttNotifier", "NoopNotifier", "NotificationDeliveryError", "WebhookNotifier"]
