"""
Preference detection: habits inferred from the last 30 days of activity.

Each detector returns a small dict and stores it as a `preferences` memory
(key `preference_<name>`), so the memory router can surface it later. The
combined summary is cached in the memory store and reused for a few hours.
"""

import json
import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import as_utc, utcnow
from ..models.domain import Expense, StudyGoal, Task
from .memory import MemoryStore

logger = logging.getLogger(__name__)

WINDOW_DAYS = 30
SUMMARY_KEY = "preference_summary"
CATEGORY = "preferences"

STYLE_DESCRIPTIONS = {
    "quick_wins": "You prefer completing many small tasks",
    "deep_work": "You prefer focused, deep work sessions",
    "balanced": "You balance between quick tasks and deep work",
}


def _hour_bucket(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning_person"
    if 12 <= hour < 18:
        return "afternoon_person"
    if 18 <= hour < 24:
        return "evening_person"
    return "night_owl"


def _stddev(values: list[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


class UserPreferenceService:

    def __init__(self, db: AsyncSession, memory: MemoryStore, cache_hours: int = 6):
        self.db = db
        self.memory = memory
        self.cache_hours = cache_hours

    async def get_summary(self) -> dict:
        """Cached summary; recomputed when older than `cache_hours`."""
        cached = await self.memory.get(SUMMARY_KEY)
        if cached is not None and self._is_fresh(cached.meta or {}):
            return cached.value or {}

        summary = await self.build_summary()
        await self.memory.store(
            SUMMARY_KEY,
            summary,
            category=CATEGORY,
            content="preference summary: " + " ".join(summary["insights"]),
            metadata={"cached_at": utcnow().isoformat()},
        )
        return summary

    async def build_summary(self) -> dict:
        preferences = await self.detect_preferences()
        return {
            "preferences": preferences,
            "insights": self._insights(preferences),
            "last_updated": utcnow().isoformat(),
        }

    async def detect_preferences(self) -> dict:
        return {
            "productivity_pattern": await self.detect_productivity_pattern(),
            "spending_habits": await self.detect_spending_habits(),
            "study_preferences": await self.detect_study_preferences(),
            "task_priorities": await self.detect_task_priorities(),
            "work_style": await self.detect_work_style(),
        }

    # ── Detectors ────────────────────────────────────────────────────

    async def detect_productivity_pattern(self) -> dict:
        """Morning / afternoon / evening person, from completion hours."""
        since = utcnow() - timedelta(days=WINDOW_DAYS)
        result = await self.db.execute(
            select(Task).where(Task.done.is_(True), Task.created_at >= since)
        )
        tasks = result.scalars().all()
        if not tasks:
            return {"pattern": "unknown", "confidence": 0, "peak_hours": []}

        hourly = Counter(as_utc(t.completed_at or t.updated_at).hour for t in tasks)
        peak = hourly.most_common(3)
        peak_hours = [hour for hour, _ in peak]

        data = {
            "pattern": _hour_bucket(peak_hours[0]),
            "peak_hours": peak_hours,
            "confidence": min(1.0, sum(count for _, count in peak) / len(tasks)),
        }
        await self._store("productivity_pattern", data)
        return {**data, "hourly_distribution": dict(hourly)}

    async def detect_spending_habits(self) -> dict:
        since = utcnow() - timedelta(days=WINDOW_DAYS)
        result = await self.db.execute(select(Expense).where(Expense.spent_at >= since))
        expenses = result.scalars().all()
        if not expenses:
            return {"average_daily": 0, "top_categories": {}, "spending_style": "unknown"}

        average_daily = sum(e.amount for e in expenses) / WINDOW_DAYS

        by_category: dict[str, float] = defaultdict(float)
        by_day: dict[str, float] = defaultdict(float)
        for e in expenses:
            by_category[e.category] += e.amount
            by_day[as_utc(e.spent_at).date().isoformat()] += e.amount
        top = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)[:3]

        deviation = _stddev(list(by_day.values()))
        if deviation < average_daily * 0.3:
            style = "consistent"
        elif deviation < average_daily * 0.7:
            style = "moderate"
        else:
            style = "variable"

        habits = {
            "average_daily": round(average_daily, 2),
            "top_categories": dict(top),
            "spending_style": style,
            "variance": round(deviation, 2),
        }
        await self._store("spending_habits", habits)
        return habits

    async def detect_study_preferences(self) -> dict:
        goals = (await self.db.execute(select(StudyGoal))).scalars().all()
        if not goals:
            return {"preferred_types": {}, "average_progress_rate": 0, "consistency": "unknown"}

        types = Counter(g.study_type for g in goals if g.study_type)
        share = sum(1 for g in goals if g.progress >= 50) / len(goals)
        if share >= 0.7:
            consistency = "high"
        elif share >= 0.4:
            consistency = "medium"
        else:
            consistency = "low"

        data = {
            "preferred_types": dict(types.most_common(3)),
            "average_progress_rate": round(sum(g.progress for g in goals) / len(goals), 1),
            "consistency": consistency,
            "total_goals": len(goals),
        }
        await self._store("study_preferences", data)
        return data

    async def detect_task_priorities(self) -> dict:
        since = utcnow() - timedelta(days=WINDOW_DAYS)
        completed = (await self.db.execute(
            select(Task).where(Task.done.is_(True), Task.updated_at >= since)
        )).scalars().all()
        if not completed:
            return {"preferred_priority": "medium", "completion_rate_by_priority": {}}

        done_by_priority = Counter(t.priority for t in completed)
        created = (await self.db.execute(
            select(Task).where(Task.created_at >= since)
        )).scalars().all()
        created_by_priority = Counter(t.priority for t in created)

        rates = {}
        for priority in ("low", "medium", "high"):
            total = created_by_priority[priority]
            rates[priority] = round(done_by_priority[priority] / total * 100, 1) if total else 0

        data = {
            "preferred_priority": done_by_priority.most_common(1)[0][0],
            "completion_rate_by_priority": rates,
            "total_completed": len(completed),
        }
        await self._store("task_priorities", data)
        return data

    async def detect_work_style(self) -> dict:
        since = utcnow() - timedelta(days=WINDOW_DAYS)
        tasks = (await self.db.execute(
            select(Task).where(Task.created_at >= since)
        )).scalars().all()
        if not tasks:
            return {"style": "unknown"}

        estimates = [t.estimated_minutes for t in tasks if t.estimated_minutes is not None]
        short = sum(1 for m in estimates if m <= 60)
        long = sum(1 for m in estimates if m > 60)

        if short > long * 2:
            style = "quick_wins"
        elif long > short:
            style = "deep_work"
        else:
            style = "balanced"

        data = {
            "style": style,
            "planning_tendency": len(estimates) / len(tasks),
            "average_task_duration": round(sum(estimates) / len(estimates)) if estimates else 0,
        }
        await self._store("work_style", data)
        return data

    # ── Helpers ──────────────────────────────────────────────────────

    def _insights(self, preferences: dict) -> list[str]:
        insights = []
        productivity = preferences["productivity_pattern"]
        if productivity["confidence"] > 0.6:
            insights.append(f"You are most productive during {productivity['pattern']} hours.")

        top_categories = preferences["spending_habits"]["top_categories"]
        if top_categories:
            insights.append(f"Your highest spending category is {next(iter(top_categories))}.")

        if preferences["study_preferences"]["consistency"] == "high":
            insights.append("You maintain high consistency in your study goals.")

        insights.append(
            f"You tend to focus on {preferences['task_priorities']['preferred_priority']} priority tasks."
        )
        insights.append(
            STYLE_DESCRIPTIONS.get(preferences["work_style"]["style"], "Your work style is developing")
        )
        return insights

    def _is_fresh(self, meta: dict) -> bool:
        cached_at: Optional[str] = meta.get("cached_at")
        if not cached_at:
            return False
        try:
            stamp = as_utc(datetime.fromisoformat(cached_at))
        except ValueError:
            return False
        return utcnow() - stamp < timedelta(hours=self.cache_hours)

    async def _store(self, name: str, data: dict) -> None:
        await self.memory.store(
            f"preference_{name}",
            data,
            category=CATEGORY,
            content=f"{name}: {json.dumps(data, ensure_ascii=False)}",
            metadata={"detected_at": utcnow().isoformat()},
        )
