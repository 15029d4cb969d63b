"""
Read-only access to the user's tasks, expenses and study goals.

Everything comes back as plain dicts so the context bundle can be
serialized and measured without touching the ORM again.
"""

import logging
from collections import defaultdict
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.domain import Expense, StudyGoal, Task

logger = logging.getLogger(__name__)

_PRIORITY_RANK = case(
    (Task.priority == "high", 3),
    (Task.priority == "medium", 2),
    (Task.priority == "low", 1),
    else_=0,
)


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class DomainDataSource:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def today_tasks(self) -> list[dict]:
        """Tasks due today, highest priority first."""
        start, end = _day_bounds(utcnow())
        result = await self.db.execute(
            select(Task)
            .where(Task.due_at >= start, Task.due_at < end)
            .order_by(_PRIORITY_RANK.desc(), Task.due_at)
        )
        return [task.to_dict() for task in result.scalars().all()]

    async def completed_tasks_today(self) -> list[dict]:
        start, end = _day_bounds(utcnow())
        result = await self.db.execute(
            select(Task)
            .where(Task.due_at >= start, Task.due_at < end, Task.done.is_(True))
            .order_by(_PRIORITY_RANK.desc())
        )
        return [task.to_dict() for task in result.scalars().all()]

    async def recent_expenses(self, days: int = 7) -> dict:
        """
        Expenses of the last `days` days, newest first.

        Returns {"total", "by_category", "items"}; by_category is ordered by
        amount, largest first.
        """
        now = utcnow()
        result = await self.db.execute(
            select(Expense)
            .where(Expense.spent_at >= now - timedelta(days=days), Expense.spent_at <= now)
            .order_by(Expense.spent_at.desc())
        )
        items = [expense.to_dict() for expense in result.scalars().all()]

        by_category: dict[str, float] = defaultdict(float)
        for item in items:
            by_category[item["category"]] += item["amount"]

        return {
            "total": round(sum(item["amount"] for item in items), 2),
            "by_category": dict(sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)),
            "items": items,
        }

    async def expenses_today(self) -> list[dict]:
        start, end = _day_bounds(utcnow())
        result = await self.db.execute(
            select(Expense)
            .where(Expense.spent_at >= start, Expense.spent_at < end)
            .order_by(Expense.spent_at)
        )
        return [expense.to_dict() for expense in result.scalars().all()]

    async def study_goals(self) -> list[dict]:
        """All study goals, nearest deadline first; goals without one go last."""
        result = await self.db.execute(
            select(StudyGoal).order_by(StudyGoal.deadline.is_(None), StudyGoal.deadline)
        )
        return [goal.to_dict() for goal in result.scalars().all()]
