"""
Life-management records read by the assistant.

Tasks, expenses and study goals are written by the CRUD side of the product;
the assistant only reads them through services.domain.DomainDataSource.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class Task(RecordBase):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")
    status: Mapped[str] = mapped_column(String, nullable=False, default="todo")
    done: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "done": self.done,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "estimated_minutes": self.estimated_minutes,
        }


class Expense(RecordBase):
    __tablename__ = "expenses"

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="other", index=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    spent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "category": self.category,
            "note": self.note,
            "spent_at": self.spent_at.isoformat() if self.spent_at else None,
        }


class StudyGoal(RecordBase):
    __tablename__ = "study_goals"

    name: Mapped[str] = mapped_column(String, nullable=False)
    study_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "study_type": self.study_type,
            "progress": self.progress,
            "status": self.status,
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }
