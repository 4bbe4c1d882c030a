from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Text
from datetime import datetime
from .database import Base


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default="inbox", index=True)
    priority = Column(String(20), default="medium")
    due_date = Column(Date, nullable=True, index=True)
    completed = Column(Boolean, nullable=False, default=False)
    focused = Column(Boolean, nullable=False, default=False, index=True)
    position = Column(Integer, nullable=False, default=0, index=True)
    time_estimate = Column(String(20), nullable=True)
    energy_level = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
