import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from typing import List, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import JSONResponse

from . import crud, schemas
from .broadcast import ConnectionRegistry
from .config import Settings, get_settings
from .database import get_db, init_db, make_engine, make_session_factory
from .logging_config import setup_logging
from .middleware import LoggingMiddleware
from .sweep import run_sweep_scheduler, sweep_overdue

log = structlog.get_logger()

router = APIRouter()


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_task_or_404(db: Session, task_id: int):
    task = crud.get_task(db, task_id)
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/api/tasks", response_model=List[schemas.TaskOut])
def list_tasks(
    background_tasks: BackgroundTasks,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
):
    if settings.sweep_on_read:
        try:
            swept = sweep_overdue(db)
        except SQLAlchemyError:
            db.rollback()
            log.exception("overdue_sweep_failed")
            swept = []
        for task in swept:
            background_tasks.add_task(registry.broadcast, "update", task)
    return crud.list_tasks(db, category=category)


@router.post("/api/tasks", response_model=schemas.TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    task_in: schemas.TaskCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    task = schemas.TaskOut.model_validate(crud.create_task(db, task_in))
    log.info("task_created", task_id=task.id, category=task.category, position=task.position)
    background_tasks.add_task(registry.broadcast, "create", task)
    return task


@router.put("/api/tasks/{task_id}", response_model=schemas.TaskOut)
def update_task(
    task_id: int,
    task_in: schemas.TaskUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    db_task = _get_task_or_404(db, task_id)
    task = schemas.TaskOut.model_validate(crud.replace_task(db, db_task, task_in))
    log.info("task_updated", task_id=task.id)
    background_tasks.add_task(registry.broadcast, "update", task)
    return task


@router.put("/api/tasks/{task_id}/position", response_model=schemas.TaskOut)
def move_task(
    task_id: int,
    move: schemas.TaskMove,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    db_task = _get_task_or_404(db, task_id)
    task = schemas.TaskOut.model_validate(crud.move_task(db, db_task, move.position, move.category))
    log.info("task_moved", task_id=task.id, category=task.category, position=task.position)
    background_tasks.add_task(registry.broadcast, "update", task)
    return task


@router.put("/api/tasks/{task_id}/focus", response_model=schemas.TaskOut)
def focus_task(
    task_id: int,
    focus: schemas.TaskFocus,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    db_task = _get_task_or_404(db, task_id)
    task = schemas.TaskOut.model_validate(crud.set_focus(db, db_task, focus.focused))
    log.info("task_focus_changed", task_id=task.id, focused=task.focused)
    background_tasks.add_task(registry.broadcast, "update", task)
    return task


@router.delete("/api/tasks/{task_id}", response_model=schemas.Message)
def delete_task(
    task_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    db_task = _get_task_or_404(db, task_id)
    task = schemas.TaskOut.model_validate(db_task)
    crud.delete_task(db, db_task)
    log.info("task_deleted", task_id=task.id)
    background_tasks.add_task(registry.broadcast, "delete", task)
    return schemas.Message(message="Task deleted successfully")


@router.websocket("/ws")
async def task_updates(websocket: WebSocket):
    registry: ConnectionRegistry = websocket.app.state.registry
    async with registry.connection(websocket):
        # push only: anything the client sends is read and dropped
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("unhandled_error", error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    init_db(app.state.engine)

    scheduler = None
    if settings.sweep_interval_seconds > 0:
        scheduler = asyncio.create_task(
            run_sweep_scheduler(
                app.state.session_factory,
                app.state.registry,
                interval_seconds=settings.sweep_interval_seconds,
            )
        )
    app.state.sweep_task = scheduler
    log.info(
        "app_started",
        database=settings.masked_database_url(),
        sweep_interval_seconds=settings.sweep_interval_seconds,
        sweep_on_read=settings.sweep_on_read,
        debug=settings.debug,
    )

    yield

    if scheduler is not None:
        scheduler.cancel()
        with suppress(asyncio.CancelledError):
            await scheduler
    await app.state.registry.close_all()
    app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_format, settings.debug)

    app = FastAPI(title="GTD Tasks API", version="1.0.0", lifespan=lifespan)

    engine = make_engine(settings.database_url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.registry = ConnectionRegistry()

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SQLAlchemyError, internal_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(router)
    return app


app = create_app()
