"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .memory import LongTermMemory
from .domain import Task, Expense, StudyGoal

__all__ = [
    "RecordBase",
    "LongTermMemory",
    "Task", "Expense", "StudyGoal",
]
