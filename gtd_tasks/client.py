"""Python client for the task API and its push feed.

``TaskAPI`` wraps the REST endpoints with httpx. ``TaskFeed`` holds a single
WebSocket connection to ``/ws`` and reconnects with exponential backoff
(1s, 2s, 4s, 8s, 16s) before giving up. Events that arrive while the feed is
disconnected are lost; callers re-fetch the list to catch up.
"""

import asyncio
import json
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog
import websockets
from websockets.exceptions import WebSocketException

log = structlog.get_logger()

RECONNECT_BASE_DELAY = 1.0
MAX_RECONNECT_ATTEMPTS = 5


class TaskAPIError(Exception):
    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"API request failed: {status_code} {reason}")
        self.status_code = status_code
        self.reason = reason


class TaskAPI:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def __enter__(self) -> "TaskAPI":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self._client.request(method, path, **kwargs)
        if response.is_error:
            raise TaskAPIError(response.status_code, response.reason_phrase)
        return response.json()

    def list_tasks(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"category": category} if category else None
        return self._request("GET", "/api/tasks", params=params)

    def create_task(self, title: str, **fields) -> Dict[str, Any]:
        return self._request("POST", "/api/tasks", json=_jsonable({"title": title, **fields}))

    def update_task(self, task_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/tasks/{task_id}", json=_jsonable(fields))

    def move_task(self, task_id: int, position: int, category: str) -> Dict[str, Any]:
        return self._request(
            "PUT",
            f"/api/tasks/{task_id}/position",
            json={"position": position, "category": category},
        )

    def set_focus(self, task_id: int, focused: bool) -> Dict[str, Any]:
        return self._request("PUT", f"/api/tasks/{task_id}/focus", json={"focused": focused})

    def delete_task(self, task_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/tasks/{task_id}")


def _jsonable(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, date) else v for k, v in fields.items()}


class FeedListener:
    """Override the hooks you care about; all of them default to no-ops."""

    def on_connect(self) -> None:
        pass

    def on_disconnect(self) -> None:
        pass

    def on_message(self, event: Dict[str, Any]) -> None:
        pass


def backoff_delay(attempt: int, base_delay: float = RECONNECT_BASE_DELAY) -> float:
    """Delay before reconnect ``attempt`` (1-based): base, 2*base, 4*base, ..."""
    return base_delay * 2 ** (attempt - 1)


class TaskFeed:
    def __init__(
        self,
        url: str,
        *,
        base_delay: float = RECONNECT_BASE_DELAY,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        connect: Callable[[str], Any] = websockets.connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self._connect = connect
        self._sleep = sleep
        self._listeners: List[FeedListener] = []
        self._ws = None
        self._should_reconnect = True
        self.reconnect_attempts = 0

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def add_listener(self, listener: FeedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def run(self) -> None:
        """Connect and dispatch events until stopped or out of reconnect attempts."""
        self._should_reconnect = True
        self.reconnect_attempts = 0

        while True:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self.reconnect_attempts = 0
                    log.info("task_feed_connected", url=self.url)
                    self._notify("on_connect")
                    async for raw in ws:
                        self._dispatch(raw)
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                log.warning("task_feed_connection_error", url=self.url, error=str(exc))
            finally:
                if self._ws is not None:
                    self._ws = None
                    log.info("task_feed_disconnected", url=self.url)
                    self._notify("on_disconnect")

            if not self._should_reconnect or self.reconnect_attempts >= self.max_attempts:
                return

            self.reconnect_attempts += 1
            delay = backoff_delay(self.reconnect_attempts, self.base_delay)
            log.info(
                "task_feed_reconnecting",
                delay_s=delay,
                attempt=self.reconnect_attempts,
                max_attempts=self.max_attempts,
            )
            await self._sleep(delay)
            if not self._should_reconnect:
                return

    async def stop(self) -> None:
        self._should_reconnect = False
        if self._ws is not None:
            await self._ws.close()

    def _dispatch(self, raw) -> None:
        try:
            event = json.loads(raw)
        except ValueError:
            log.warning("task_feed_bad_message", raw=str(raw)[:200])
            return
        for listener in list(self._listeners):
            listener.on_message(event)

    def _notify(self, hook: str) -> None:
        for listener in list(self._listeners):
            getattr(listener, hook)()
