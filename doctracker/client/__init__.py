"""Client-side pieces: notification store, live channel and push bridge."""

from doctracker.client.api import APIError, DocTrackerAPI
from doctracker.client.bridge import PushBridge, ShownNotification
from doctracker.client.live import LiveChannel, LiveChannelAuthError, LiveChannelError
from doctracker.client.store import NotificationStore

__all__ = [
    "APIError",
    "DocTrackerAPI",
    "LiveChannel",
    "LiveChannelAuthError",
    "LiveChannelError",
    "NotificationStore",
    "PushBridge",
    "ShownNotification",
]
