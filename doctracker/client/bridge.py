from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Protocol
from urllib.parse import urljoin

logger = logging.getLogger("doctracker.client")

DEFAULT_TITLE = "Document Tracker"
DEFAULT_BODY = "New notification"
DEFAULT_ICON = "/favicon.ico"
DEFAULT_TAG = "document-tracker"
AUTO_CLOSE_SECONDS = 5.0


class NotificationHandle(Protocol):
    def close(self) -> None: ...


class NotificationSurface(Protocol):
    """Platform facility that renders notifications (OS tray, browser, ...)."""

    def show(self, title: str, options: Mapping[str, Any]) -> NotificationHandle: ...


class AppWindow(Protocol):
    url: str

    def focus(self) -> Any: ...


class WindowManager(Protocol):
    def list_windows(self) -> Iterable[AppWindow]: ...

    def open_window(self, url: str) -> Any: ...


Scheduler = Callable[[float, Callable[[], None]], Any]


def _timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


@dataclass(eq=False)
class ShownNotification:
    title: str
    options: dict[str, Any]
    handle: NotificationHandle = field(repr=False)
    closed: bool = False

    @property
    def data(self) -> dict[str, Any]:
        return self.options.get("data") or {}

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.handle.close()


class PushBridge:
    """Turns push messages and live events into platform notifications.

    Every message is shown at most once and never retried.
    """

    def __init__(
        self,
        surface: NotificationSurface,
        windows: WindowManager,
        *,
        origin: str = "",
        auto_close_seconds: float | None = AUTO_CLOSE_SECONDS,
        scheduler: Scheduler = _timer,
    ) -> None:
        self.surface = surface
        self.windows = windows
        self.origin = origin.rstrip("/")
        self.auto_close_seconds = auto_close_seconds
        self.scheduler = scheduler

    def handle_push(self, data: bytes | str | None) -> ShownNotification:
        payload = self.parse_push(data)
        options = {
            "body": payload.get("body") or DEFAULT_BODY,
            "icon": payload.get("icon") or DEFAULT_ICON,
            "badge": payload.get("badge") or DEFAULT_ICON,
            "tag": payload.get("tag") or DEFAULT_TAG,
            "data": dict(payload.get("data") or {}),
            "actions": list(payload.get("actions") or []),
            "requireInteraction": False,
            "silent": False,
            "vibrate": [200, 100, 200],
        }
        return self._display(payload.get("title") or DEFAULT_TITLE, options)

    @staticmethod
    def parse_push(data: bytes | str | None) -> dict[str, Any]:
        if not data:
            return {"title": DEFAULT_TITLE, "body": DEFAULT_BODY}
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        return {"title": DEFAULT_TITLE, "body": text.strip() or DEFAULT_BODY}

    def show_live(self, notification: Mapping[str, Any]) -> ShownNotification:
        document_id = notification.get("document_id")
        options = {
            "body": notification.get("message") or DEFAULT_BODY,
            "icon": DEFAULT_ICON,
            "badge": DEFAULT_ICON,
            "tag": f"notification-{notification.get('id')}",
            "data": {
                "url": f"/document/{document_id}" if document_id else "/",
                "notificationId": notification.get("id"),
            },
        }
        return self._display(notification.get("title") or DEFAULT_TITLE, options)

    def handle_click(self, notification: ShownNotification) -> Any:
        notification.close()
        target = self.resolve_url(notification.data.get("url") or "/")
        for window in self.windows.list_windows():
            if window.url == target:
                logger.debug("Focusing open window %s", target)
                return window.focus()
        logger.debug("Opening window %s", target)
        return self.windows.open_window(target)

    def resolve_url(self, url: str) -> str:
        if not self.origin:
            return url
        return urljoin(f"{self.origin}/", url)

    def _display(self, title: str, options: dict[str, Any]) -> ShownNotification:
        shown = ShownNotification(title=title, options=options, handle=self.surface.show(title, options))
        if self.auto_close_seconds:
            self.scheduler(self.auto_close_seconds, shown.close)
        return shown
