# tests/conftest.py

from datetime import date
from pathlib import Path
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from gtd_tasks import crud, schemas
from gtd_tasks.broadcast import ConnectionRegistry
from gtd_tasks.config import Settings
from gtd_tasks.database import init_db, make_engine, make_session_factory
from gtd_tasks.main import create_app

# far enough in the past that nothing created with it is auto-focused
LONG_AGO = date(2000, 1, 1)


class RecordingRegistry(ConnectionRegistry):
    """ConnectionRegistry that also remembers every broadcast call."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[Tuple[str, schemas.TaskOut]] = []

    async def broadcast(self, action, task):
        self.events.append((action, task))
        return await super().broadcast(action, task)


class FakeWebSocket:
    def __init__(self, fail_send: bool = False) -> None:
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: List[str] = []
        self.fail_send = fail_send

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise RuntimeError("socket went away")
        self.sent.append(data)

    async def close(self) -> None:
        self.application_state = WebSocketState.DISCONNECTED


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test_tasks.db'}",
        sweep_interval_seconds=0,
    )


@pytest.fixture
def app(settings: Settings):
    application = create_app(settings)
    application.state.registry = RecordingRegistry()
    return application


@pytest.fixture
def registry(app) -> RecordingRegistry:
    return app.state.registry


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = make_engine(f"sqlite:///{tmp_path / 'sweep.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def app_db(app):
    """Session bound to the same database as the ``app`` fixture."""
    init_db(app.state.engine)
    db = app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def build_task_create(
    title="Test Task",
    description="Test description",
    category="inbox",
    priority="medium",
    due_date=None,
    focused=False,
):
    return schemas.TaskCreate(
        title=title,
        description=description,
        category=category,
        priority=priority,
        due_date=due_date,
        focused=focused,
    )


def add_task(db, **kwargs):
    """Insert a task without letting today's date auto-focus it."""
    return crud.create_task(db, build_task_create(**kwargs), today=LONG_AGO)
