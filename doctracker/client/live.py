"""Long-lived connection to the notification stream.

Reconnect policy: after a dropped or failed connection the channel waits
``initial_delay`` seconds, doubling on each consecutive failure up to
``max_delay``. A successful connection resets the delay. With ``max_retries``
set, the channel gives up after that many consecutive failures.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Iterator

import httpx

logger = logging.getLogger("doctracker.client")

EventCallback = Callable[[dict[str, Any]], Any]


class LiveChannelError(RuntimeError):
    pass


class LiveChannelAuthError(LiveChannelError):
    """The server refused the credentials; reconnecting will not help."""


class LiveChannel:
    def __init__(
        self,
        base_url: str,
        token: str,
        on_event: EventCallback,
        *,
        path: str = "/api/v1/notifications/stream",
        initial_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
        max_retries: int | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self.path = path
        self.token = token
        self.on_event = on_event
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.max_retries = max_retries
        self.last_event_id: str | None = None
        self.connected = False
        self.failures = 0
        self.delay = initial_delay

        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(10.0, read=None),
            transport=transport,
        )
        self._closed = threading.Event()
        self._sleep = sleep or self._closed.wait
        self._response: httpx.Response | None = None
        self._thread: threading.Thread | None = None

    def __enter__(self) -> "LiveChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> threading.Thread:
        """Runs the channel on a daemon thread."""
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run_logged, name="doctracker-live", daemon=True)
            self._thread.start()
        return self._thread

    def run(self) -> None:
        """Connects and reconnects until closed or out of retries."""
        while not self.closed:
            try:
                self._consume()
            except LiveChannelAuthError:
                self.close()
                raise
            except (httpx.HTTPError, httpx.StreamError, LiveChannelError) as exc:
                if self.closed:
                    break
                logger.warning("Live channel connection failed: %s", exc)
            finally:
                self.connected = False

            if self.closed:
                break
            self.failures += 1
            if self.max_retries is not None and self.failures > self.max_retries:
                raise LiveChannelError(f"Live channel gave up after {self.max_retries} retries")

            delay = self.delay
            self.delay = min(self.delay * self.backoff_factor, self.max_delay)
            logger.info("Live channel reconnecting in %.1fs", delay)
            self._sleep(delay)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        response = self._response
        if response is not None:
            response.close()
        self._client.close()

    def _run_logged(self) -> None:
        try:
            self.run()
        except LiveChannelError as exc:
            logger.error("Live channel stopped: %s", exc)

    def _consume(self) -> None:
        headers = {"Accept": "text/event-stream", "Authorization": f"Bearer {self.token}"}
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id
        with self._client.stream("GET", self.path, headers=headers) as response:
            if response.status_code in (401, 403):
                raise LiveChannelAuthError(f"Live channel rejected with HTTP {response.status_code}")
            if response.status_code >= 400:
                raise LiveChannelError(f"Live channel answered HTTP {response.status_code}")

            self._response = response
            self.connected = True
            self.failures = 0
            self.delay = self.initial_delay
            try:
                for name, data in self._events(response.iter_lines()):
                    if self.closed:
                        return
                    self._deliver(name, data)
            finally:
                self._response = None

    def _events(self, lines: Iterator[str]) -> Iterator[tuple[str, str]]:
        name = "message"
        data: list[str] = []
        for line in lines:
            if not line:
                if data:
                    yield name, "\n".join(data)
                name, data = "message", []
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "event":
                name = value
            elif field == "data":
                data.append(value)
            elif field == "id":
                self.last_event_id = value
        if data:
            yield name, "\n".join(data)

    def _deliver(self, name: str, data: str) -> None:
        if name != "notification":
            logger.debug("Live channel event %s", name)
            return
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed live event")
            return
        try:
            self.on_event(event)
        except Exception:
            logger.exception("Live event callback failed")
