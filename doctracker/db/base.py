# noqa: F401 to ensure models are imported for metadata
from doctracker.models.document import Document, DocumentActivity, DocumentComment, DocumentSignatory
from doctracker.models.notification import Notification, PushSubscription
from doctracker.models.user import User

__all__ = [
    "Document",
    "DocumentActivity",
    "DocumentComment",
    "DocumentSignatory",
    "Notification",
    "PushSubscription",
    "User",
]
