from sqlalchemy import func, update
from sqlalchemy.orm import Session
from datetime import date, datetime
from typing import List, Optional
from . import models, schemas


def utc_today() -> date:
    return datetime.utcnow().date()


def should_auto_focus(due_date: Optional[date], today: date, completed: bool = False) -> bool:
    return due_date is not None and due_date <= today and not completed


def get_task(db: Session, task_id: int) -> Optional[models.Task]:
    return db.query(models.Task).filter(models.Task.id == task_id).first()


def list_tasks(db: Session, category: Optional[str] = None) -> List[models.Task]:
    query = db.query(models.Task)
    if category:
        query = query.filter(models.Task.category == category)
    return query.order_by(models.Task.position.asc(), models.Task.created_at.asc()).all()


def next_position(db: Session, category: str) -> int:
    current = (
        db.query(func.coalesce(func.max(models.Task.position), 0))
        .filter(models.Task.category == category)
        .scalar()
    )
    return current + 1


def create_task(db: Session, task_in: schemas.TaskCreate, today: Optional[date] = None) -> models.Task:
    data = task_in.model_dump()
    today = today or utc_today()
    data["position"] = next_position(db, data["category"])
    data["focused"] = data["focused"] or should_auto_focus(data["due_date"], today)
    task = models.Task(**data)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def replace_task(
    db: Session, db_task: models.Task, task_in: schemas.TaskUpdate, today: Optional[date] = None
) -> models.Task:
    data = task_in.model_dump()
    today = today or utc_today()
    data["focused"] = data["focused"] or should_auto_focus(data["due_date"], today, data["completed"])
    for field, value in data.items():
        setattr(db_task, field, value)
    db.commit()
    db.refresh(db_task)
    return db_task


def move_task(db: Session, db_task: models.Task, position: int, category: str) -> models.Task:
    db_task.position = position
    db_task.category = category
    db.commit()
    db.refresh(db_task)
    return db_task


def set_focus(db: Session, db_task: models.Task, focused: bool) -> models.Task:
    db_task.focused = focused
    db.commit()
    db.refresh(db_task)
    return db_task


def delete_task(db: Session, db_task: models.Task) -> None:
    db.delete(db_task)
    db.commit()


def mark_overdue_focused(db: Session, today: Optional[date] = None) -> List[models.Task]:
    """Focus every incomplete, unfocused task due on or before ``today``.

    Runs as a single UPDATE ... RETURNING and commits it; the returned rows are
    the ones that changed. Tasks a user un-focused by hand are picked up again
    while they stay overdue and incomplete.
    """
    today = today or utc_today()
    stmt = (
        update(models.Task)
        .where(
            models.Task.due_date <= today,
            models.Task.focused == False,  # noqa: E712
            models.Task.completed == False,  # noqa: E712
        )
        .values(focused=True)
        .returning(models.Task)
    )
    tasks = db.scalars(stmt).all()
    db.commit()
    return tasks
