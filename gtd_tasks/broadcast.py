"""ConnectionRegistry -- in-process fan-out of task changes to WebSocket clients.

The registry is owned by the application (``app.state.registry``). A socket is
registered only for the duration of ``registry.connection(websocket)``, so a
closed or failed connection can never linger in the set.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from starlette.websockets import WebSocket, WebSocketState

from .schemas import TaskEvent, TaskOut

log = structlog.get_logger()


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


def build_event(action: str, task: TaskOut) -> TaskEvent:
    return TaskEvent(
        action=action,
        task=task,
        timestamp=datetime.now(timezone.utc),
    )


class ConnectionRegistry:
    """Set of live push sockets with best-effort broadcast."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    def __len__(self) -> int:
        return len(self._connections)

    @asynccontextmanager
    async def connection(self, websocket: WebSocket) -> AsyncIterator[WebSocket]:
        """Accept ``websocket`` and keep it registered until the block exits."""
        self._connections.add(websocket)
        try:
            await websocket.accept()
            log.debug("websocket_connected", clients=len(self._connections))
            yield websocket
        finally:
            self._connections.discard(websocket)
            log.debug("websocket_disconnected", clients=len(self._connections))

    async def broadcast(self, action: str, task: TaskOut) -> int:
        """Send one task_update event to every connected socket.

        Sockets that are not open are skipped; their own connection block
        removes them. Returns the number of sockets the event was sent to.
        """
        if not self._connections:
            return 0

        message = build_event(action, task).model_dump_json()
        sent = 0
        for websocket in list(self._connections):
            if not _is_open(websocket):
                continue
            try:
                await websocket.send_text(message)
                sent += 1
            except Exception:
                log.exception("broadcast_send_failed", action=action, task_id=task.id)

        log.debug("broadcast_sent", action=action, task_id=task.id, clients=sent)
        return sent

    async def close_all(self) -> None:
        for websocket in list(self._connections):
            if websocket.application_state == WebSocketState.CONNECTED:
                try:
                    await websocket.close()
                except Exception:
                    log.exception("websocket_close_failed")
        self._connections.clear()
