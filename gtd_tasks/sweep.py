"""
Overdue sweep.

Promotes every incomplete task whose due date has arrived to "focused" and
tells connected clients about each promoted task. It runs:
- on a fixed period, from the scheduler started by the application lifespan,
- at the start of each list request, when ``sweep_on_read`` is enabled.
"""

import asyncio
from datetime import date
from typing import Callable, List, Optional

import structlog
from sqlalchemy.orm import Session

from . import crud
from .broadcast import ConnectionRegistry
from .schemas import TaskOut

log = structlog.get_logger()


def sweep_overdue(db: Session, today: Optional[date] = None) -> List[TaskOut]:
    tasks = crud.mark_overdue_focused(db, today=today)
    swept = [TaskOut.model_validate(t) for t in tasks]
    if swept:
        log.info("overdue_tasks_focused", count=len(swept), task_ids=[t.id for t in swept])
    return swept


def sweep_with_new_session(session_factory: Callable[[], Session], today: Optional[date] = None) -> List[TaskOut]:
    with session_factory() as db:
        return sweep_overdue(db, today=today)


async def run_sweep_scheduler(
    session_factory: Callable[[], Session],
    registry: ConnectionRegistry,
    *,
    interval_seconds: float = 300.0,
) -> None:
    """
    Periodic sweep loop.

    Every interval_seconds:
    - run the sweep in a worker thread (the database session is synchronous)
    - broadcast one "update" per promoted task

    A failing tick is logged and the loop carries on. To stop the scheduler,
    cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        try:
            swept = await asyncio.to_thread(sweep_with_new_session, session_factory)
        except Exception:
            log.exception("overdue_sweep_failed")
            swept = []

        for task in swept:
            await registry.broadcast("update", task)

        await asyncio.sleep(sleep_s)
