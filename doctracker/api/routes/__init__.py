from . import auth, documents, health, notifications, users

__all__ = [
    "auth",
    "documents",
    "health",
    "notifications",
    "users",
]
