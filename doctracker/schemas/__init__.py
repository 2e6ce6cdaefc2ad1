from doctracker.schemas import auth, common, document, notification, user

__all__ = [
    "auth",
    "common",
    "document",
    "notification",
    "user",
]
