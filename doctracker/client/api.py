from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

import httpx


class APIError(RuntimeError):
    """Raised when the document tracker API answers with an error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = dict(details or {})


class DocTrackerAPI:
    """Thin HTTP client for the notification endpoints of the API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        api_prefix: str = "/api/v1",
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix.rstrip("/")
        self.token = token
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout_seconds, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DocTrackerAPI":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ======================================================================
    # Notifications
    # ======================================================================

    def list_notifications(self, limit: int = 50) -> dict[str, Any]:
        return self._request("GET", "/notifications", params={"limit": limit})

    def unread_count(self) -> int:
        return int(self._request("GET", "/notifications/unread-count")["unread_count"])

    def mark_read(self, notification_id: UUID | str) -> dict[str, Any]:
        return self._request("POST", f"/notifications/{notification_id}/read")

    def mark_all_read(self) -> int:
        return int(self._request("POST", "/notifications/read-all")["updated"])

    def delete_notification(self, notification_id: UUID | str) -> dict[str, Any]:
        return self._request("DELETE", f"/notifications/{notification_id}")

    def clear_notifications(self) -> dict[str, Any]:
        return self._request("DELETE", "/notifications")

    # ======================================================================
    # Web Push
    # ======================================================================

    def push_public_key(self) -> dict[str, Any]:
        return self._request("GET", "/notifications/push/public-key")

    def save_push_subscription(self, subscription: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/notifications/push/subscriptions", json=dict(subscription))

    def remove_push_subscription(self, endpoint: str) -> None:
        self._request("DELETE", "/notifications/push/subscriptions", json={"endpoint": endpoint})

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = self._client.request(
                method,
                f"{self.api_prefix}{path}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.RequestError as exc:
            raise APIError(f"Could not reach the API: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"detail": response.text}
            if not isinstance(payload, dict):
                payload = {"detail": payload}
            message = str(payload.get("detail") or f"HTTP {response.status_code}")
            raise APIError(message, status_code=response.status_code, details=payload)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()
