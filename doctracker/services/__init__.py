from doctracker.services.auth import AuthService
from doctracker.services.dispatcher import NotificationDispatcher
from doctracker.services.document import DocumentService
from doctracker.services.fanout import NotificationFanout
from doctracker.services.notifications import UserNotificationService
from doctracker.services.push import PushDeliveryService, PushSubscriptionService
from doctracker.services.realtime import NotificationBroker
from doctracker.services.user import UserService

__all__ = [
    "AuthService",
    "DocumentService",
    "NotificationBroker",
    "NotificationDispatcher",
    "NotificationFanout",
    "PushDeliveryService",
    "PushSubscriptionService",
    "UserNotificationService",
    "UserService",
]
