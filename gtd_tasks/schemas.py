from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

CATEGORIES = ("inbox", "next", "waiting", "scheduled", "someday")
PRIORITIES = ("low", "medium", "high")
ACTIONS = ("create", "update", "delete")

CATEGORY_PATTERN = "^(" + "|".join(CATEGORIES) + ")$"
PRIORITY_PATTERN = "^(" + "|".join(PRIORITIES) + ")$"


class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: str = Field(default="inbox", pattern=CATEGORY_PATTERN)
    priority: str = Field(default="medium", pattern=PRIORITY_PATTERN)
    due_date: Optional[date] = None
    focused: bool = False
    time_estimate: Optional[str] = Field(default=None, max_length=20)
    energy_level: Optional[str] = Field(default=None, max_length=20)

    @field_validator("due_date", "time_estimate", "energy_level", mode="before")
    @classmethod
    def blank_as_none(cls, value):
        # the browser form posts "" for untouched selects and date inputs
        if isinstance(value, str) and value.strip() == "":
            return None
        return value


class TaskCreate(TaskBase):
    pass


class TaskUpdate(TaskBase):
    completed: bool = False


class TaskMove(BaseModel):
    position: int
    category: str = Field(pattern=CATEGORY_PATTERN)


class TaskFocus(BaseModel):
    focused: bool


class TaskOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    category: str
    priority: Optional[str] = None
    due_date: Optional[date] = None
    completed: bool
    focused: bool
    position: int
    time_estimate: Optional[str] = None
    energy_level: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaskEvent(BaseModel):
    type: str = "task_update"
    action: str = Field(pattern="^(" + "|".join(ACTIONS) + ")$")
    task: TaskOut
    timestamp: datetime


class Message(BaseModel):
    message: str
